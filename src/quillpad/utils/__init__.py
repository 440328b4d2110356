"""Shared helpers (logging, file IO, language detection)."""
