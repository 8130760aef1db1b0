"""
High-level utilities for rendering cached battle stories into printable PDFs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4, LETTER, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch, mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Frame, Paragraph

from battlebook.common.asset import GeneratedAsset
from battlebook.common.errors import AssetNotFoundError
from battlebook.planning.plan import StoryboardFrame
from battlebook.storage.image_store import ImageStore
from battlebook.storage.story import StoredStory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageLayoutConfig:
    text_background: colors.Color
    image_background: colors.Color
    cover_background: colors.Color
    accent_color: colors.Color
    text_color: colors.Color
    caption_color: colors.Color


DEFAULT_LAYOUT = PageLayoutConfig(
    text_background=colors.HexColor("#F7F0DE"),
    image_background=colors.HexColor("#EDE6D3"),
    cover_background=colors.HexColor("#3E4A3D"),
    accent_color=colors.HexColor("#B5833C"),
    text_color=colors.HexColor("#2E2A22"),
    caption_color=colors.HexColor("#5A5344"),
)


PAGE_SIZES = {
    "a4": landscape(A4),
    "letter": landscape(LETTER),
    "square": (8 * inch, 8 * inch),
}


class StorybookPDFBuilder:
    """
    Render a :class:`StoredStory` into a printable PDF.

    The builder creates:
      * A cover page with the battle name, context and narrative summary.
      * One spread per storyboard page: a text page with the page description and
        its source excerpt, followed by the page's final composite image.

    Images are read from disk when ``image_store`` (or the asset's ``uri``)
    points at a local file, otherwise downloaded over HTTP.
    """

    def __init__(
        self,
        *,
        page_size: tuple[float, float] = PAGE_SIZES["a4"],
        margin_mm: float = 18.0,
        layout: PageLayoutConfig = DEFAULT_LAYOUT,
        image_store: ImageStore | None = None,
        base_url: str | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.page_size = page_size
        self.margin = margin_mm * mm
        self.layout = layout
        self.image_store = image_store
        self.base_url = base_url.rstrip("/") if base_url else None
        self.request_timeout = request_timeout

        self.title_style = ParagraphStyle(
            name="BattleTitle",
            fontName="Times-Bold",
            fontSize=30,
            leading=34,
            alignment=TA_CENTER,
            textColor=colors.white,
            spaceAfter=12,
        )
        self.subtitle_style = ParagraphStyle(
            name="BattleSubtitle",
            fontName="Times-Italic",
            fontSize=16,
            leading=20,
            alignment=TA_CENTER,
            textColor=colors.white,
            spaceAfter=18,
        )
        self.body_title_style = ParagraphStyle(
            name="BodyTitle",
            fontName="Times-Bold",
            fontSize=22,
            leading=26,
            alignment=TA_CENTER,
            textColor=self.layout.text_color,
            spaceAfter=14,
        )
        self.body_style = ParagraphStyle(
            name="Body",
            fontName="Times-Roman",
            fontSize=15,
            leading=21,
            alignment=TA_JUSTIFY,
            textColor=self.layout.text_color,
            spaceAfter=14,
        )
        self.excerpt_style = ParagraphStyle(
            name="Excerpt",
            parent=self.body_style,
            fontName="Times-Italic",
            fontSize=12,
            leading=16,
            textColor=self.layout.caption_color,
        )
        self.footer_style = ParagraphStyle(
            name="Footer",
            fontName="Helvetica-Oblique",
            fontSize=10,
            leading=12,
            alignment=TA_CENTER,
            textColor=self.layout.caption_color,
        )

    def build_from_yaml(self, story_path: Path | str, output_path: Path | str) -> None:
        story = StoredStory.from_yaml(story_path)
        self.build(story, output_path)

    def build(self, story: StoredStory, output_path: Path | str) -> None:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        pdf = canvas.Canvas(str(output_file), pagesize=self.page_size)
        pdf.setTitle(story.name)
        width, height = self.page_size

        self._draw_cover_page(pdf, story, width, height)

        for index, frame in enumerate(story.plan.storyboard):
            self._draw_text_page(pdf, story, frame, width, height)
            self._draw_image_page(pdf, frame, story.page_image(index), width, height)

        pdf.save()
        logger.info("Wrote %d pages for '%s' to %s", 1 + 2 * story.page_count, story.name, output_file)

    # ------------------------------------------------------------------ cover rendering

    def _draw_cover_page(
        self,
        pdf: canvas.Canvas,
        story: StoredStory,
        width: float,
        height: float,
    ) -> None:
        pdf.setFillColor(self.layout.cover_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

        identification = story.plan.identification
        frame = Frame(
            self.margin,
            self.margin,
            width - 2 * self.margin,
            height - 2 * self.margin,
            showBoundary=0,
        )

        intro = [
            Paragraph(_escape(story.name), self.title_style),
            Paragraph(_escape(identification.context), self.subtitle_style),
        ]
        if identification.narrative_summary:
            intro.append(
                Paragraph(
                    _escape(identification.narrative_summary),
                    ParagraphStyle(
                        "Summary",
                        parent=self.subtitle_style,
                        fontName="Times-Roman",
                        fontSize=14,
                        leading=18,
                    ),
                )
            )
        factions = ", ".join(faction.name for faction in story.plan.factions)
        if factions:
            intro.append(Paragraph(_escape(factions), self.subtitle_style))

        frame.addFromList(intro, pdf)
        pdf.showPage()

    # ------------------------------------------------------------------ text pages

    def _draw_text_page(
        self,
        pdf: canvas.Canvas,
        story: StoredStory,
        frame: StoryboardFrame,
        width: float,
        height: float,
    ) -> None:
        pdf.setFillColor(self.layout.text_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

        inset = self.margin * 0.6
        pdf.saveState()
        pdf.setStrokeColor(self.layout.accent_color)
        pdf.setLineWidth(2)
        pdf.rect(inset, inset, width - 2 * inset, height - 2 * inset, stroke=1, fill=0)
        pdf.restoreState()

        content = Frame(
            self.margin,
            self.margin + 20,
            width - 2 * self.margin,
            height - 2 * self.margin - 20,
            showBoundary=0,
        )

        paragraphs = [Paragraph(f"Page {frame.frame}", self.body_title_style)]
        for block in filter(None, (part.strip() for part in frame.description.split("\n\n"))):
            paragraphs.append(Paragraph(_escape(block), self.body_style))
        if frame.source_text.strip():
            paragraphs.append(Paragraph(f"&ldquo;{_escape(frame.source_text.strip())}&rdquo;", self.excerpt_style))

        content.addFromList(paragraphs, pdf)

        self._draw_footer(pdf, f"Page {frame.frame} - {_escape(story.name)}", width)
        pdf.showPage()

    # ------------------------------------------------------------------ image pages

    def _draw_image_page(
        self,
        pdf: canvas.Canvas,
        frame: StoryboardFrame,
        asset: GeneratedAsset | None,
        width: float,
        height: float,
    ) -> None:
        pdf.setFillColor(self.layout.image_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

        image_reader = self._load_image(asset) if asset is not None else None

        if image_reader is not None:
            img_width, img_height = image_reader.getSize()
            available_width = width - 2 * self.margin
            available_height = height - 2 * self.margin - 20
            scale = min(available_width / img_width, available_height / img_height)
            draw_width = img_width * scale
            draw_height = img_height * scale
            x = (width - draw_width) / 2
            y = self.margin + 20 + (available_height - draw_height) / 2
            pdf.drawImage(
                image_reader,
                x,
                y,
                draw_width,
                draw_height,
                preserveAspectRatio=True,
                mask="auto",
            )

        self._draw_footer(pdf, f"Illustration for Page {frame.frame}", width)
        pdf.showPage()

    # ------------------------------------------------------------------ helpers

    def _draw_footer(self, pdf: canvas.Canvas, text: str, width: float) -> None:
        footer_frame = Frame(
            self.margin,
            10,
            width - 2 * self.margin,
            20,
            showBoundary=0,
        )
        footer_frame.addFromList([Paragraph(text, self.footer_style)], pdf)

    def _load_image(self, asset: GeneratedAsset) -> Optional[ImageReader]:
        local = self._local_path(asset)
        if local is not None:
            return ImageReader(str(local))
        return self._fetch_image(self._absolute_url(asset.url))

    def _local_path(self, asset: GeneratedAsset) -> Path | None:
        candidate = Path(asset.uri)
        if candidate.is_file():
            return candidate
        if self.image_store is None:
            return None
        try:
            return self.image_store.local_path(asset.url)
        except AssetNotFoundError:
            logger.warning("Illustration %s is missing from %s.", asset.url, self.image_store.root)
            return None

    def _absolute_url(self, url: str) -> str:
        if url.startswith("/") and self.base_url:
            return f"{self.base_url}{url}"
        return url

    def _fetch_image(self, url: str) -> Optional[ImageReader]:
        if not url.startswith(("http://", "https://")):
            logger.warning("Skipping image '%s': not a local file or HTTP URL.", url)
            return None
        try:
            response = requests.get(url, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Could not download illustration %s: %s", url, exc)
            return None
        return ImageReader(BytesIO(response.content))


def _escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\n", "<br/>")
    )


__all__ = ["DEFAULT_LAYOUT", "PAGE_SIZES", "PageLayoutConfig", "StorybookPDFBuilder"]
