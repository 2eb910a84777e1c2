"""Zonefile structural validation.

Brief:
  Two zonefile layouts coexist. A decoded document is discriminated by trying
  the Legacy schema first and the Current schema second; the first that
  accepts the document decides the variant. Ownership is checked separately
  so that a stale zonefile is reported as needing an update rather than as a
  format error.

Inputs:
  - Decoded zonefile values from zonefile.codec.decode().

Outputs:
  - ZonefileDocument tagged values, booleans from validate(), and
    InvalidFormatError / ZonefileOwnerMismatchError / NotFoundError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from ..errors import InvalidFormatError, NotFoundError, ZonefileOwnerMismatchError
from .codec import decode

logger = logging.getLogger(__name__)

BASE_FIELDS = ("owner", "general", "twitter", "url", "nostr", "lightning", "btc")
SUBDOMAIN_LABEL_PATTERN = "^[a-z0-9-_]+$"

VARIANT_LEGACY = "legacy"
VARIANT_CURRENT = "current"

SOURCE_LEGACY_LIST = "legacy_list"
SOURCE_INLINE = "inline"
SOURCE_EXTERNAL = "external"

_STRING_BASE_PROPERTIES = {field: {"type": "string"} for field in BASE_FIELDS}

SUBDOMAIN_RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": list(BASE_FIELDS),
    "properties": dict(_STRING_BASE_PROPERTIES),
    "additionalProperties": False,
}

# Label -> record map shared by external subdomain files.
SUBDOMAIN_MAP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "patternProperties": {SUBDOMAIN_LABEL_PATTERN: SUBDOMAIN_RECORD_SCHEMA},
    "additionalProperties": False,
}

LEGACY_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": list(BASE_FIELDS) + ["subdomains"],
    "properties": {
        "subdomains": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "sequence", "owner", "signature", "text"],
                "properties": {"sequence": {"type": "number"}},
            },
        },
    },
}

CURRENT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": list(BASE_FIELDS),
    "properties": {
        **_STRING_BASE_PROPERTIES,
        "subdomains": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": list(BASE_FIELDS),
                "properties": dict(_STRING_BASE_PROPERTIES),
            },
        },
        "externalSubdomainFile": {"type": "string"},
    },
    "oneOf": [
        {"required": ["subdomains"], "not": {"required": ["externalSubdomainFile"]}},
        {"required": ["externalSubdomainFile"], "not": {"required": ["subdomains"]}},
    ],
}

_LEGACY_VALIDATOR = Draft202012Validator(LEGACY_SCHEMA)
_CURRENT_VALIDATOR = Draft202012Validator(CURRENT_SCHEMA)


@dataclass(frozen=True)
class ZonefileDocument:
    """Validated zonefile tagged with its variant and subdomain source.

    Inputs:
      - variant: VARIANT_LEGACY or VARIANT_CURRENT.
      - source: SOURCE_LEGACY_LIST, SOURCE_INLINE or SOURCE_EXTERNAL.
      - data: The decoded document.
    """

    variant: str
    source: str
    data: Dict[str, Any]

    @property
    def owner(self) -> Any:
        return self.data.get("owner")

    @property
    def btc(self) -> Any:
        return self.data.get("btc")

    @property
    def external_url(self) -> Optional[str]:
        if self.source != SOURCE_EXTERNAL:
            return None
        return self.data.get("externalSubdomainFile")

    @property
    def subdomains(self) -> Any:
        """Inline subdomains (list for Legacy, map for Current); None if external."""
        if self.source == SOURCE_EXTERNAL:
            return None
        return self.data.get("subdomains")

    def has_btc_address(self) -> bool:
        btc = self.btc
        return isinstance(btc, str) and btc.strip() != ""


def classify(doc: Any) -> Optional[ZonefileDocument]:
    """Brief: Discriminate doc by ordered trial validation.

    Inputs:
      - doc: Decoded zonefile value.

    Outputs:
      - ZonefileDocument, or None when neither schema accepts doc.
    """

    if _LEGACY_VALIDATOR.is_valid(doc):
        return ZonefileDocument(VARIANT_LEGACY, SOURCE_LEGACY_LIST, doc)
    if _CURRENT_VALIDATOR.is_valid(doc):
        source = SOURCE_EXTERNAL if "externalSubdomainFile" in doc else SOURCE_INLINE
        return ZonefileDocument(VARIANT_CURRENT, source, doc)
    return None


def validate(doc: Any) -> bool:
    """Return True when doc matches the Legacy or the Current layout."""
    return classify(doc) is not None


def validation_errors(doc: Any) -> List[str]:
    """Brief: Human-readable Current-layout errors for doc, for logging.

    Inputs:
      - doc: Decoded zonefile value.

    Outputs:
      - List of '<path>: <message>' strings; empty when doc is valid.
    """

    if validate(doc):
        return []
    errors = sorted(_CURRENT_VALIDATOR.iter_errors(doc), key=lambda e: list(e.path))
    return [f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors]


def check_owner(document: ZonefileDocument, owner: Optional[str]) -> None:
    """Raise ZonefileOwnerMismatchError when the embedded owner differs from owner."""
    if document.owner != owner:
        raise ZonefileOwnerMismatchError("Zonefile needs to be updated (owner mismatch)")


def load_zonefile(zonefile_hex: Optional[str], owner: Optional[str]) -> ZonefileDocument:
    """
    Brief: Decode, validate and owner-check a stored zonefile.

    Inputs:
    - zonefile_hex: Stored hex blob (may be None).
    - owner: Current owner of the name.

    Outputs:
    - ZonefileDocument.

    Raises:
    - NotFoundError: nothing to decode.
    - InvalidFormatError: document fits neither layout.
    - ZonefileOwnerMismatchError: document owner differs from owner.
    """
    decoded = decode(zonefile_hex)
    if not decoded:
        raise NotFoundError("No zonefile found or unable to decode")

    document = classify(decoded)
    if document is None:
        logger.debug("Rejected zonefile: %s", "; ".join(validation_errors(decoded)))
        raise InvalidFormatError("Invalid zonefile format")

    check_owner(document, owner)
    return document
