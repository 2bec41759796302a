from __future__ import annotations


class GenerationError(RuntimeError):
    """Any failure inside the article pipeline, whatever stage raised it."""
