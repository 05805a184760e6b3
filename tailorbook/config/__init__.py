# tailorbook/config/__init__.py
"""
tailorbook.config is a PACKAGE.

- Shop defaults and template context live in: tailorbook.config.shop
- App runtime settings live in: tailorbook.settings
"""
from __future__ import annotations

from .shop import shop_context

__all__ = ["shop_context"]
