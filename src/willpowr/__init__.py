"""WillPowr habit progress and synchronization engine."""

from __future__ import annotations

from .config import BaseConfig
from .context import create_app_context, create_widget_provider

__all__ = ["BaseConfig", "create_app_context", "create_widget_provider"]
