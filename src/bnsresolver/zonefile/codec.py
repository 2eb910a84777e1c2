from __future__ import annotations

import binascii
import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def decode(zonefile_hex: Optional[str]) -> Optional[Any]:
    """
    Brief: Decode a hex-encoded zonefile blob.

    Inputs:
    - zonefile_hex: Hex string with an optional '0x' prefix, or None.

    Outputs:
    - The parsed JSON value when the text is JSON.
    - The UTF-8 text verbatim when it is not JSON (plain zonefiles are legal).
    - None for empty input, malformed hex or invalid UTF-8.

    Example:
        >>> decode("0x" + b'{"owner": "SP1"}'.hex())
        {'owner': 'SP1'}
        >>> decode("6869")
        'hi'
        >>> decode("zz") is None
        True
    """
    if not zonefile_hex:
        return None

    hex_text = zonefile_hex[2:] if zonefile_hex[:2] in ("0x", "0X") else zonefile_hex
    if not hex_text:
        return None

    try:
        raw = binascii.unhexlify(hex_text)
        text = raw.decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        # UnicodeDecodeError is a ValueError subclass.
        logger.debug("Unable to decode zonefile blob: %s", exc)
        return None

    try:
        return json.loads(text)
    except ValueError:
        return text
