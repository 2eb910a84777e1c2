from __future__ import annotations

import re
from typing import Any, Mapping
from urllib.parse import urlsplit

from ..errors import ProfileFormatError

VALID_IMAGE_EXTENSIONS = (
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".webp",
    ".bmp",
    ".tiff",
)

VALID_SOCIAL_PLATFORMS = (
    "x",
    "twitter",
    "telegram",
    "discord",
    "instagram",
    "youtube",
    "linkedin",
    "github",
    "facebook",
    "tiktok",
    "snapchat",
    "reddit",
)

VALID_NETWORKS = (
    "btc",
    "bitcoin",
    "eth",
    "ethereum",
    "stx",
    "stacks",
    "sol",
    "solana",
    "ltc",
    "litecoin",
    "bch",
    "bitcoincash",
    "doge",
    "dogecoin",
)

VALID_ADDRESS_TYPES = ("payment", "ordinal", "wallet", "receiving", "change")

OPTIONAL_STRING_FIELDS = ("btc", "bio", "website", "name", "location")

_LABEL_RE = re.compile(r"^[a-z0-9-_]+$")


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def _parsed(url: str):
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts


def is_valid_image_url(url: Any) -> bool:
    """Empty values pass; otherwise an https URL whose path ends with an image extension."""
    if _is_blank(url):
        return True
    parts = _parsed(url)
    if parts is None or parts.scheme.lower() != "https":
        return False
    return parts.path.lower().endswith(VALID_IMAGE_EXTENSIONS)


def is_valid_url(url: Any) -> bool:
    """Empty values pass; otherwise an http(s) URL."""
    if _is_blank(url):
        return True
    parts = _parsed(url)
    return parts is not None and parts.scheme.lower() in ("http", "https")


def _check_entries(zonefile: Mapping[str, Any], key: str, label: str, check) -> None:
    entries = zonefile[key]
    if not isinstance(entries, list):
        raise ProfileFormatError(f"Field '{key}' must be an array")
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ProfileFormatError(f"{label} entry at index {i} must be an object")
        check(i, entry)


def _check_social(i: int, entry: Mapping[str, Any]) -> None:
    platform = entry.get("platform")
    if not isinstance(platform, str) or platform.lower() not in VALID_SOCIAL_PLATFORMS:
        raise ProfileFormatError(
            f"Social entry at index {i} has invalid platform. "
            f"Valid platforms: {', '.join(VALID_SOCIAL_PLATFORMS)}"
        )
    if _is_blank(entry.get("username")):
        raise ProfileFormatError(f"Social entry at index {i} must have a non-empty username")


def _check_address(i: int, entry: Mapping[str, Any]) -> None:
    network = entry.get("network")
    if not isinstance(network, str) or network.lower() not in VALID_NETWORKS:
        raise ProfileFormatError(
            f"Address entry at index {i} has invalid network. "
            f"Valid networks: {', '.join(VALID_NETWORKS)}"
        )
    if _is_blank(entry.get("address")):
        raise ProfileFormatError(f"Address entry at index {i} must have a non-empty address")
    addr_type = entry.get("type")
    if not isinstance(addr_type, str) or addr_type.lower() not in VALID_ADDRESS_TYPES:
        raise ProfileFormatError(
            f"Address entry at index {i} has invalid type. "
            f"Valid types: {', '.join(VALID_ADDRESS_TYPES)}"
        )


def _check_meta(i: int, entry: Mapping[str, Any]) -> None:
    if _is_blank(entry.get("name")):
        raise ProfileFormatError(f"Meta entry at index {i} must have a non-empty name")
    if not isinstance(entry.get("value"), str):
        raise ProfileFormatError(f"Meta entry at index {i} must have a string value")


def validate_profile(zonefile: Any) -> None:
    """
    Brief: Check a decoded zonefile against the profile layout.

    Inputs:
    - zonefile: Decoded zonefile value.

    Outputs:
    - None when valid.

    Raises:
    - ProfileFormatError: describing the first offending field. Subdomain
      entries are validated recursively and prefixed with their label.

    Example:
        >>> validate_profile({"owner": "SP1", "pfp": "https://x.io/a.png"})
    """
    if not isinstance(zonefile, dict):
        raise ProfileFormatError("Zonefile must be an object")

    if _is_blank(zonefile.get("owner")):
        raise ProfileFormatError("Field 'owner' is required and must be a non-empty string")

    for field in OPTIONAL_STRING_FIELDS:
        if field in zonefile and not isinstance(zonefile[field], str):
            raise ProfileFormatError(f"Field '{field}' must be a string")

    if "pfp" in zonefile:
        if not isinstance(zonefile["pfp"], str):
            raise ProfileFormatError("Field 'pfp' must be a string")
        if not is_valid_image_url(zonefile["pfp"]):
            raise ProfileFormatError(
                "Field 'pfp' must be a valid HTTPS URL ending with a valid image extension"
            )

    if "website" in zonefile and not is_valid_url(zonefile["website"]):
        raise ProfileFormatError("Field 'website' must be a valid URL")

    if "social" in zonefile:
        _check_entries(zonefile, "social", "Social", _check_social)
    if "addresses" in zonefile:
        _check_entries(zonefile, "addresses", "Address", _check_address)
    if "meta" in zonefile:
        _check_entries(zonefile, "meta", "Meta", _check_meta)

    if "subdomains" in zonefile:
        subdomains = zonefile["subdomains"]
        if not isinstance(subdomains, dict):
            raise ProfileFormatError("Field 'subdomains' must be an object")
        for label, sub in subdomains.items():
            if not _LABEL_RE.match(label):
                raise ProfileFormatError(
                    f"Subdomain name '{label}' contains invalid characters. Only "
                    "lowercase letters, numbers, hyphens, and underscores are allowed"
                )
            try:
                validate_profile(sub)
            except ProfileFormatError as exc:
                raise ProfileFormatError(f"Subdomain '{label}': {exc.details}") from None

    if "externalSubdomainsFile" in zonefile:
        if not isinstance(zonefile["externalSubdomainsFile"], str):
            raise ProfileFormatError("Field 'externalSubdomainsFile' must be a string")
        if not is_valid_url(zonefile["externalSubdomainsFile"]):
            raise ProfileFormatError("Field 'externalSubdomainsFile' must be a valid URL")
