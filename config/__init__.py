"""Configuration package for the interview services."""
from .routes import LlmRoute, resolve_provider, route_from_settings
from .settings import Settings, settings

__all__ = [
    "LlmRoute",
    "resolve_provider",
    "route_from_settings",
    "Settings",
    "settings",
]
