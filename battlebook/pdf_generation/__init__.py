"""
PDF rendering for cached battle stories.
"""

from .builder import DEFAULT_LAYOUT, PAGE_SIZES, PageLayoutConfig, StorybookPDFBuilder

__all__ = ["DEFAULT_LAYOUT", "PAGE_SIZES", "PageLayoutConfig", "StorybookPDFBuilder"]
