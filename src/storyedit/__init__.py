"""Conversational story editor: natural-language edits for multi-scene story drafts."""

__version__ = "0.1.0"
