"""quillpad: multi-document editing sessions with inline completions and streaming chat."""

__version__ = "0.1.0"

__all__ = ["__version__"]
