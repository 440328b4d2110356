"""Presentation-facing surface: the event bus and the editor coordinator facade."""
