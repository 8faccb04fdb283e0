"""Telegram webhook bridge between the Bot API and the web front-end."""

__version__ = "1.0.0"
