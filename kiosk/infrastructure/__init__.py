"""
Infrastructure layer - External dependencies and implementations.

Contains:
- Ledger stores (JSON file, Redis)
- Print dispatchers
- Configuration

Only settings are re-exported here; the logger depends on them, so the
stores and dispatchers are imported from their modules directly.
"""

from .settings import (
    Settings,
    get_settings,
    load_settings,
)


__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
]
