# Package: aaa_core.retention
"""Accounting retention sweep and its scheduler."""

from __future__ import annotations

from .job import JsonExportHook, RetentionJob, RetentionResult
from .scheduler import RetentionScheduler

__all__ = ["RetentionJob", "RetentionResult", "JsonExportHook", "RetentionScheduler"]
