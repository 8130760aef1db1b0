"""
Render a battlebook story YAML into a printable PDF.

Usage:
    python scripts/render_story_pdf.py \
        --story battlebook_story.yaml \
        --output battlebook_story.pdf
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from battlebook import ImageStore, StoredStory, StorybookPDFBuilder  # noqa: E402
from battlebook.pdf_generation.builder import PAGE_SIZES  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a battlebook story YAML into a storybook PDF."
    )
    parser.add_argument(
        "--story",
        required=True,
        help="Path to the story YAML (output of run_full_pipeline.py or a cached story file).",
    )
    parser.add_argument(
        "--output",
        required=True,
        help="Destination PDF file path.",
    )
    parser.add_argument(
        "--page-size",
        choices=sorted(PAGE_SIZES.keys()),
        default="a4",
        help="Page size to render (default: a4 landscape).",
    )
    parser.add_argument(
        "--margin-mm",
        type=float,
        default=18.0,
        help="Page margin in millimetres (default: 18).",
    )
    parser.add_argument(
        "--images-dir",
        default="tmp/images",
        help="Directory of stored images referenced by the story (default: tmp/images).",
    )
    parser.add_argument(
        "--server",
        default=None,
        metavar="URL",
        help="Backend URL used to download images that are not available locally.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for downloading illustration assets (default: 30).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    story = StoredStory.from_yaml(args.story)

    builder = StorybookPDFBuilder(
        page_size=PAGE_SIZES[args.page_size],
        margin_mm=args.margin_mm,
        image_store=ImageStore(args.images_dir),
        base_url=args.server,
        request_timeout=args.timeout,
    )
    builder.build(story, args.output)

    print(f"Rendered storybook PDF to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
