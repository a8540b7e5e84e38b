"""
Gallery page parsing: <img> extraction with lightbox source overrides.
"""

from .extractor import ExtractedImage, UrlError, extract_images

__all__ = ["ExtractedImage", "UrlError", "extract_images"]
