"""Zonefile decoding, layout validation and profile checks."""

from __future__ import annotations

from .codec import decode
from .validator import ZonefileDocument, classify, load_zonefile, validate

__all__ = ["ZonefileDocument", "classify", "decode", "load_zonefile", "validate"]
