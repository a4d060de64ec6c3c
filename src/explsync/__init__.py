"""Explsync - keeps a question bank's explanations in step with a versioned manifest."""

__version__ = "0.1.0"
