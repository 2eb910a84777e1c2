"""Relational store access (read-only)."""

from __future__ import annotations

from .base import NameRecord, NamespaceRecord, NameStore

__all__ = ["NameRecord", "NamespaceRecord", "NameStore"]
