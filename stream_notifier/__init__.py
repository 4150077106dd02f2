"""Persistent delivery queue for stream notifications (Telegram/Discord)."""

__version__ = "0.1.0"
