import pytest

from battlebook.common.errors import AssetNotFoundError
from battlebook.common.files import sha256_hex
from battlebook.storage.image_store import ImageStore


def test_save_is_content_addressed(tmp_path):
    store = ImageStore(tmp_path)
    asset = store.save(b"pixels", "image/png", caption="Map")

    assert asset.url == f"/images/{sha256_hex(b'pixels')}.png"
    assert asset.mime_type == "image/png"
    assert asset.caption == "Map"
    assert store.save(b"pixels", "image/png").uri == asset.uri
    assert store.path_for(asset.url.rsplit("/", 1)[-1]).read_bytes() == b"pixels"


def test_jpeg_extension(tmp_path):
    asset = ImageStore(tmp_path).save(b"jpeg", "image/jpeg")
    assert asset.url.endswith(".jpg")


def test_path_for_refuses_missing_and_escaping_names(tmp_path):
    store = ImageStore(tmp_path / "images")
    (tmp_path / "secret.txt").write_text("secret", encoding="utf-8")

    with pytest.raises(AssetNotFoundError):
        store.path_for("missing.png")
    with pytest.raises(AssetNotFoundError):
        store.path_for("../secret.txt")


def test_local_path_and_load(tmp_path):
    store = ImageStore(tmp_path / "images")
    source = tmp_path / "guide.jpg"
    source.write_bytes(b"guide")

    asset = store.load(source, caption="Guide")

    assert asset.mime_type == "image/jpeg"
    assert store.local_path(asset.url).read_bytes() == b"guide"
    assert store.local_path(asset.uri).read_bytes() == b"guide"
    assert store.local_path("https://example.com/x.png") is None
    with pytest.raises(AssetNotFoundError):
        store.load(tmp_path / "nope.png")
