"""SciDraft - lab report drafting API."""

__version__ = "0.1.0"
