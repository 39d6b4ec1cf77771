# Package: aaa_core.nas
"""NAS client registry."""

from __future__ import annotations

from .models import NasClient
from .registry import NasRegistry

__all__ = ["NasClient", "NasRegistry"]
