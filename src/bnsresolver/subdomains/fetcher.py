"""External subdomain file fetcher.

Brief:
  Retrieves a subdomains JSON document referenced by a zonefile's
  externalSubdomainFile URL. The URL must pass every security check before
  any network I/O happens; the download is then bounded in size and time and
  the payload is validated before it is cached by URL.

Inputs:
  - URL strings taken from validated zonefiles.

Outputs:
  - Parsed external files (dict with a 'subdomains' mapping).
  - UnsafeUrlError, ExternalFileError, ExternalFileTooLargeError,
    ExternalFileTimeoutError or SchemaViolationError on failure.
"""

from __future__ import annotations

import json
import logging
import re
import socket
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional, Pattern, Sequence
from urllib.parse import urlsplit

import requests
from jsonschema import Draft202012Validator
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import ReadTimeoutError

from ..cache.base import CachePlugin
from ..errors import (
    ExternalFileError,
    ExternalFileTimeoutError,
    ExternalFileTooLargeError,
    SchemaViolationError,
    UnsafeUrlError,
)
from ..zonefile.validator import SUBDOMAIN_MAP_SCHEMA
from .bounded_reader import BoundedReader, ReadDeadlineExceeded, ReadLimitExceeded

logger = logging.getLogger(__name__)

MAX_EXTERNAL_FILE_BYTES = 50 * 1024 * 1024
FETCH_TIMEOUT_SECONDS = 5.0
EXTERNAL_FILE_TTL = 300
CHUNK_SIZE = 8 * 1024

DEFAULT_ALLOWED_HOST_PATTERNS = (r"^[a-z0-9.-]+\.s3([.-][a-z0-9-]+)*\.amazonaws\.com$",)
# Always applied; configured blocked patterns are added on top.
DEFAULT_BLOCKED_HOST_PATTERNS = (
    r"^localhost$",
    r"^127(\.\d{1,3}){3}$",
    r"^::1$",
    r"^0\.0\.0\.0$",
)

_SUBDOMAIN_MAP_VALIDATOR = Draft202012Validator(SUBDOMAIN_MAP_SCHEMA)


def _compile(patterns: Iterable[str]) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in dict.fromkeys(patterns))


def _is_read_timeout(exc: BaseException) -> bool:
    """Return True when exc, or anything it wraps, is a socket read timeout.

    requests reports a mid-body stall as ConnectionError(ReadTimeoutError),
    so the wrapped exceptions are searched as well as the chain.
    """
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, (requests.Timeout, ReadTimeoutError, socket.timeout)):
            return True
        pending.extend(a for a in getattr(current, "args", ()) if isinstance(a, BaseException))
        pending.append(current.__cause__)
        pending.append(current.__context__)
    return False


def _interrupt(resp: Any) -> None:
    """Stop an in-flight body read from another thread.

    urllib3's HTTPResponse.shutdown() shuts the socket down, which wakes a
    reader blocked in recv(); close() alone does not.
    """
    shutdown = getattr(getattr(resp, "raw", None), "shutdown", None)
    if callable(shutdown):
        try:
            shutdown()
        except (OSError, RuntimeError, ValueError) as exc:
            logger.debug("Socket shutdown after deadline failed: %s", exc)
    resp.close()


def schema_errors(subdomains: Any) -> list[str]:
    """Brief: Collect every schema violation in an external subdomains map.

    Inputs:
      - subdomains: Value of the 'subdomains' key.

    Outputs:
      - List of '/<path> <message>' strings; empty when valid.
    """

    errors = sorted(_SUBDOMAIN_MAP_VALIDATOR.iter_errors(subdomains), key=lambda e: list(e.path))
    return [f"/{'/'.join(str(p) for p in e.path)} {e.message}" for e in errors]


class ExternalSubdomainFetcher:
    """Security-gated, size and time bounded fetcher for external files.

    Inputs (constructor):
      - cache: CachePlugin used for successful fetches, keyed by URL.
      - session: Optional requests.Session-like object exposing head()/get().
      - max_bytes: Size cap applied to Content-Length and the streamed body.
      - timeout_seconds: Wall-clock budget for the GET.
      - allowed_host_patterns: Regexes a hostname must match (any).
      - blocked_host_patterns: Extra regexes a hostname must not match, in
        addition to the loopback/localhost defaults.
      - ttl: Seconds a fetched file stays cached.
      - clock: Monotonic clock callable.

    Outputs:
      - ExternalSubdomainFetcher instance.
    """

    def __init__(
        self,
        cache: CachePlugin,
        *,
        session: Optional[Any] = None,
        max_bytes: int = MAX_EXTERNAL_FILE_BYTES,
        timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
        allowed_host_patterns: Optional[Sequence[str]] = None,
        blocked_host_patterns: Optional[Sequence[str]] = None,
        ttl: int = EXTERNAL_FILE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache
        self.session = session if session is not None else requests.Session()
        self.max_bytes = int(max_bytes)
        self.timeout_seconds = float(timeout_seconds)
        self.allowed_hosts = _compile(allowed_host_patterns or DEFAULT_ALLOWED_HOST_PATTERNS)
        self.blocked_hosts = _compile(
            list(DEFAULT_BLOCKED_HOST_PATTERNS) + list(blocked_host_patterns or ())
        )
        self.ttl = int(ttl)
        self._clock = clock

    # ------------------------------------------------------------------
    # URL policy
    # ------------------------------------------------------------------
    def check_url(self, url: str) -> None:
        """Brief: Apply the URL security checks in order.

        Inputs:
          - url: Candidate URL.

        Outputs:
          - None when every check passes.

        Raises:
          - UnsafeUrlError: naming the first failed check.

        Example:
          >>> fetcher.check_url("https://evil.com/x.json?x=1")
          Traceback (most recent call last):
          UnsafeUrlError: External URL must not have query or fragment
        """

        try:
            parts = urlsplit(url)
            hostname = parts.hostname or ""
            has_userinfo = bool(parts.username or parts.password)
        except (TypeError, ValueError, AttributeError):
            raise UnsafeUrlError("External URL must be HTTPS") from None

        if parts.scheme.lower() != "https" or not parts.netloc:
            raise UnsafeUrlError("External URL must be HTTPS")
        if not parts.path.lower().endswith(".json"):
            raise UnsafeUrlError("External file must end with .json")
        if any(p.search(hostname) for p in self.blocked_hosts):
            raise UnsafeUrlError("External URL domain is not safe")
        if parts.query or parts.fragment:
            raise UnsafeUrlError("External URL must not have query or fragment")
        if has_userinfo:
            raise UnsafeUrlError("External URL must not contain user info")
        if not any(p.search(hostname) for p in self.allowed_hosts):
            raise UnsafeUrlError("External URL must be an allowed S3 domain")

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------
    def _verify_head(self, url: str) -> None:
        try:
            head = self.session.head(url, allow_redirects=False, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            logger.warning("HEAD %s failed: %s", url, exc)
            raise ExternalFileError("Unable to verify external subdomains file") from exc

        if not 200 <= int(head.status_code) < 300:
            logger.warning("HEAD %s returned HTTP %s", url, head.status_code)
            raise ExternalFileError("Unable to verify external subdomains file")

        content_type = str(head.headers.get("content-type") or "").lower()
        if "application/json" not in content_type:
            raise ExternalFileError("External file is not application/json")

        reported = head.headers.get("content-length")
        if reported:
            try:
                size = int(reported)
            except (TypeError, ValueError):
                size = None
            if size is not None and size > self.max_bytes:
                raise ExternalFileTooLargeError()

    def _download(self, url: str) -> bytes:
        started = time.monotonic()
        deadline = self._clock() + self.timeout_seconds
        try:
            resp = self.session.get(
                url, stream=True, timeout=self.timeout_seconds, allow_redirects=False
            )
        except requests.RequestException as exc:
            logger.warning("GET %s failed: %s", url, exc)
            raise ExternalFileTimeoutError() from exc

        # The reader only sees the clock between chunks, so a server dripping
        # bytes could hold the read open indefinitely. The watchdog tears the
        # transfer down when the budget runs out, wherever the read is blocked.
        expired = threading.Event()

        def _expire() -> None:
            expired.set()
            _interrupt(resp)

        watchdog = threading.Timer(
            max(0.0, self.timeout_seconds - (time.monotonic() - started)), _expire
        )
        watchdog.daemon = True
        watchdog.start()
        try:
            if not 200 <= int(resp.status_code) < 300:
                logger.warning("GET %s returned HTTP %s", url, resp.status_code)
                raise ExternalFileError("Failed to fetch external subdomains file")

            reader = BoundedReader(
                resp.iter_content(chunk_size=CHUNK_SIZE),
                self.max_bytes,
                deadline=deadline,
                on_abort=resp.close,
                clock=self._clock,
            )
            try:
                body = reader.read_all()
            except ReadLimitExceeded as exc:
                logger.warning("External file %s exceeded size cap: %s", url, exc)
                raise ExternalFileTooLargeError() from exc
            except ReadDeadlineExceeded as exc:
                logger.warning("External file %s exceeded time budget: %s", url, exc)
                raise ExternalFileTimeoutError() from exc
            except (requests.RequestException, Urllib3HTTPError, OSError) as exc:
                if expired.is_set() or _is_read_timeout(exc):
                    logger.warning("External file %s exceeded time budget: %s", url, exc)
                    raise ExternalFileTimeoutError() from exc
                logger.warning("Error reading external file %s: %s", url, exc)
                raise ExternalFileError("Error reading external subdomains file") from exc

            # A shut-down socket can also surface as a clean, truncated EOF.
            if expired.is_set():
                logger.warning("External file %s exceeded time budget", url)
                raise ExternalFileTimeoutError()
            return body
        finally:
            watchdog.cancel()
            resp.close()

    @staticmethod
    def parse(body: bytes) -> Dict[str, Any]:
        """Brief: Parse and validate a downloaded external file.

        Inputs:
          - body: Raw bytes.

        Outputs:
          - Parsed document containing a valid 'subdomains' mapping.

        Raises:
          - ExternalFileError: invalid JSON or missing 'subdomains'.
          - SchemaViolationError: 'subdomains' does not match the record schema.
        """

        try:
            data = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise ExternalFileError("Invalid JSON format in external subdomains file") from exc

        if not isinstance(data, dict) or "subdomains" not in data:
            raise ExternalFileError("No 'subdomains' property found in the JSON")

        details = schema_errors(data["subdomains"])
        if details:
            raise SchemaViolationError("Invalid subdomains schema", details)
        return data

    def fetch(self, url: str) -> Dict[str, Any]:
        """
        Brief: Return the validated external file at url.

        Inputs:
        - url: externalSubdomainFile value from a zonefile.

        Outputs:
        - Parsed document; served from cache when fetched within the TTL.
        """
        key = ("external_file", url)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        self.check_url(url)
        self._verify_head(url)
        data = self.parse(self._download(url))

        self.cache.set(key, self.ttl, data)
        logger.debug("Cached external subdomains file %s", url)
        return data
