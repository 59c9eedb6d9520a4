"""
Extractors module for turning fetched pages into usable text and signals.

- content_normalizer: HTML boilerplate removal with footer contact preservation
- deterministic: regex-based phone, email, address and social link detection
- page_classifier: URL relevance, detail-page budgeting and soft-404 detection
"""

from .content_normalizer import ContentNormalizer, NormalizedContent, normalize, normalize_text
from .deterministic import DeterministicExtractor
from .page_classifier import PageClassification, PageClassifier

__all__ = [
    "ContentNormalizer",
    "DeterministicExtractor",
    "NormalizedContent",
    "PageClassification",
    "PageClassifier",
    "normalize",
    "normalize_text",
]
