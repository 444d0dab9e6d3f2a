"""Extraction engine and strategies."""

from sift.extraction.document import PageDocument
from sift.extraction.engine import ExtractionOutcome, ProductExtractionEngine

__all__ = ["ExtractionOutcome", "PageDocument", "ProductExtractionEngine"]
