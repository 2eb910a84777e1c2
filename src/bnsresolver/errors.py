"""Error taxonomy for the BNS resolver.

Brief:
  Every failure a query can surface to a client is a ResolverError subclass
  carrying the HTTP status used by the web layer. Messages are client-facing;
  low-level detail (driver errors, socket errors) is logged, never attached.

Inputs:
  - None

Outputs:
  - Exception classes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ResolverError(Exception):
    """
    Brief: Base class for client-facing resolver errors.

    Inputs:
    - message: Client-facing description of the error.

    Outputs:
    - Exception instance with status_code and message attributes.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> Dict[str, Any]:
        """JSON error body returned to clients."""
        return {"error": self.message}


class NotFoundError(ResolverError):
    """Name, namespace, token or subdomain is absent or filtered out by validity."""

    status_code = 404


class InvalidFormatError(ResolverError):
    """Input or zonefile failed format validation."""

    status_code = 400


class ZonefileOwnerMismatchError(InvalidFormatError):
    """Zonefile's embedded owner differs from the name's current owner."""


class NamespaceNotLaunchedError(ResolverError):
    status_code = 400

    def __init__(self, message: str = "Namespace not launched") -> None:
        super().__init__(message)


class UnsafeUrlError(ResolverError):
    """External subdomain file URL failed a security check before any I/O."""

    status_code = 400


class ExternalFileError(ResolverError):
    """External subdomain file could not be verified or retrieved."""

    status_code = 400


class ExternalFileTooLargeError(ExternalFileError):
    def __init__(self, message: str = "External subdomain file too large") -> None:
        super().__init__(message)


class ExternalFileTimeoutError(ExternalFileError):
    status_code = 504

    def __init__(
        self,
        message: str = "Failed to fetch external subdomains file (timeout or network error)",
    ) -> None:
        super().__init__(message)


class SchemaViolationError(ExternalFileError):
    """
    Brief: Structural failure of an external subdomains file.

    Inputs:
    - message: Summary message.
    - details: Optional list of individual field errors.

    Outputs:
    - Exception whose message aggregates the field errors.
    """

    def __init__(self, message: str, details: Optional[List[str]] = None) -> None:
        self.details = list(details or [])
        if self.details:
            message = f"{message}: {', '.join(self.details)}"
        super().__init__(message)


class UpstreamUnavailableError(ResolverError):
    """Height oracle or relational store unreachable or answered non-2xx."""

    status_code = 500

    def __init__(self, message: str = "Upstream service unavailable") -> None:
        super().__init__(message)


class UpstreamTimeoutError(ResolverError):
    status_code = 504

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(message)


class ConflictError(ResolverError):
    status_code = 409

    def __init__(self, message: str = "Conflict: Resource already exists") -> None:
        super().__init__(message)


class ProfileFormatError(InvalidFormatError):
    """
    Brief: Zonefile does not follow the profile layout.

    Inputs:
    - details: Description of the first offending field.

    Outputs:
    - Exception whose payload carries the details next to the message.
    """

    def __init__(self, details: str) -> None:
        super().__init__("Invalid profile zonefile format")
        self.details = details

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.details}
