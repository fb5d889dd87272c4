"""Route modules for the DeepSearch API."""

from __future__ import annotations

from . import chat, health

__all__ = ["chat", "health"]
