"""HTML to plain-text normalization for extraction responses."""

from mpaka.extract.text import extract_text_content

__all__ = ["extract_text_content"]
