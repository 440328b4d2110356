"""Service layer: settings, document stores, and conversation persistence."""
