"""
stackweave configuration.

- Pydantic-based settings (environment variables, .env files)
- YAML application definitions, see ``stackweave.config.loader``
"""

from stackweave.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
