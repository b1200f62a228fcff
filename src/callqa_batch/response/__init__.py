"""Parsing of raw completion responses."""

from callqa_batch.response.extraction import excerpt, extract_json

__all__ = ["excerpt", "extract_json"]
