"""Public HTTP query surface for bnsresolver.

This module provides the FastAPI application exposing the read-only name,
namespace, token, subdomain and zonefile queries, plus helpers to run it with
uvicorn in a background thread and to probe the store periodically.

All handlers return JSON data structures built from Resolver envelopes.
Every route is mounted once per configured network; mainnet is unprefixed
and other networks live under '/<network>'.
"""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import NotFoundError, ResolverError
from ..networks import NetworkConfig
from ..resolver import ResponseEnvelope, Resolver
from ..store.base import (
    NAME_FILTER_ALL,
    NAME_FILTER_EXPIRED,
    NAME_FILTER_EXPIRING_SOON,
    NAME_FILTER_REVOKED,
    NAME_FILTER_VALID,
    NameStore,
)

logger = logging.getLogger(__name__)

NAMESPACE_MAX_AGE = 1800
NAME_MAX_AGE = 60

_ADDRESS_FILTERS = frozenset(
    {NAME_FILTER_VALID, NAME_FILTER_EXPIRED, NAME_FILTER_EXPIRING_SOON, NAME_FILTER_REVOKED}
)


class _Suppress2xxAccessFilter(logging.Filter):
    """Logging filter that drops uvicorn access records for HTTP 2xx responses.

    Inputs:
      - record: logging.LogRecord instance from uvicorn.access or other loggers.

    Outputs:
      - bool: False for records that clearly correspond to HTTP 2xx status codes,
        True otherwise (including when no status code can be determined).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        status = getattr(record, "status_code", None)
        if status is None:
            args = getattr(record, "args", None)
            if isinstance(args, dict):
                status = args.get("status_code") or args.get("status")
            elif isinstance(args, (tuple, list)) and args:
                # uvicorn passes the status code as the last positional arg
                status = args[-1]

        try:
            code = int(status)
        except (TypeError, ValueError):
            return True
        return not (200 <= code <= 299)


def install_uvicorn_2xx_suppression() -> None:
    """Attach _Suppress2xxAccessFilter to the uvicorn.access logger once."""
    access_logger = logging.getLogger("uvicorn.access")
    for f in getattr(access_logger, "filters", []):
        if isinstance(f, _Suppress2xxAccessFilter):
            return
    access_logger.addFilter(_Suppress2xxAccessFilter())


def _json(envelope: ResponseEnvelope, max_age: Optional[int] = None) -> JSONResponse:
    headers = {"Cache-Control": f"public, max-age={max_age}"} if max_age else None
    return JSONResponse(
        content=envelope.to_dict(), status_code=envelope.status_code, headers=headers
    )


def build_router(resolver: Resolver, network: NetworkConfig) -> APIRouter:
    """Brief: Build the query routes of one network.

    Inputs:
      - resolver: Resolver answering the queries.
      - network: NetworkConfig every route of this router is bound to.

    Outputs:
      - APIRouter to be included under network.route_prefix.

    Notes:
      - Static '/names/...' routes are registered before '/names/{full_name}'
        so path parameters never shadow them.
    """

    router = APIRouter()

    @router.get("/health")
    def health() -> JSONResponse:
        return _json(resolver.health())

    # Names: lists
    @router.get("/names")
    def list_names(limit: Optional[int] = Query(None), offset: Optional[int] = Query(None)):
        return _json(resolver.list_names(network, NAME_FILTER_ALL, limit, offset), NAME_MAX_AGE)

    @router.get("/names/valid")
    def list_valid(limit: Optional[int] = Query(None), offset: Optional[int] = Query(None)):
        return _json(resolver.list_names(network, NAME_FILTER_VALID, limit, offset), NAME_MAX_AGE)

    @router.get("/names/expired")
    def list_expired(limit: Optional[int] = Query(None), offset: Optional[int] = Query(None)):
        return _json(
            resolver.list_names(network, NAME_FILTER_EXPIRED, limit, offset), NAME_MAX_AGE
        )

    @router.get("/names/revoked")
    def list_revoked(limit: Optional[int] = Query(None), offset: Optional[int] = Query(None)):
        return _json(
            resolver.list_names(network, NAME_FILTER_REVOKED, limit, offset), NAME_MAX_AGE
        )

    @router.get("/names/address/{address}/{status}")
    def names_by_address(
        address: str,
        status: str,
        limit: Optional[int] = Query(None),
        offset: Optional[int] = Query(None),
    ):
        if status not in _ADDRESS_FILTERS:
            raise NotFoundError("Not Found")
        return _json(
            resolver.names_by_address(network, address, status, limit, offset), NAME_MAX_AGE
        )

    @router.get("/names/namespace/{namespace}")
    def names_by_namespace(
        namespace: str,
        limit: Optional[int] = Query(None),
        offset: Optional[int] = Query(None),
    ):
        return _json(
            resolver.names_by_namespace(network, namespace, limit, offset), NAME_MAX_AGE
        )

    # Names: single
    @router.get("/names/{namespace}/{name}/can-register")
    def can_register(namespace: str, name: str):
        return _json(resolver.can_register(network, namespace, name), NAME_MAX_AGE)

    @router.get("/names/{full_name}/renewal")
    def name_renewal(full_name: str):
        return _json(resolver.name_renewal(network, full_name), NAME_MAX_AGE)

    @router.get("/names/{full_name}/can-resolve")
    def can_resolve(full_name: str):
        return _json(resolver.can_resolve(network, full_name), NAME_MAX_AGE)

    @router.get("/names/{full_name}/owner")
    def name_owner(full_name: str):
        return _json(resolver.name_owner(network, full_name), NAME_MAX_AGE)

    @router.get("/names/{full_name}/id")
    def name_id(full_name: str):
        return _json(resolver.name_id(network, full_name), NAME_MAX_AGE)

    @router.get("/names/{full_name}/rarity")
    def name_rarity(full_name: str):
        return _json(resolver.name_rarity(network, full_name), NAME_MAX_AGE)

    @router.get("/names/{full_name}")
    def name_details(full_name: str):
        return _json(resolver.name_details(network, full_name), NAME_MAX_AGE)

    # Namespaces
    @router.get("/namespaces")
    def list_namespaces(limit: Optional[int] = Query(None), offset: Optional[int] = Query(None)):
        return _json(resolver.list_namespaces(network, limit, offset), NAMESPACE_MAX_AGE)

    @router.get("/namespaces/{namespace}/rare-names")
    def rare_names(
        namespace: str,
        limit: Optional[int] = Query(None),
        offset: Optional[int] = Query(None),
    ):
        return _json(resolver.rare_names(network, namespace, limit, offset), NAMESPACE_MAX_AGE)

    @router.get("/namespaces/{namespace}")
    def namespace_details(namespace: str):
        return _json(resolver.namespace_details(network, namespace), NAMESPACE_MAX_AGE)

    # Tokens
    @router.get("/token/last-id")
    def last_token_id():
        return _json(resolver.last_token_id(network))

    @router.get("/tokens/{token_id}/owner")
    def token_owner(token_id: int):
        return _json(resolver.token_owner(network, token_id))

    @router.get("/tokens/{token_id}/name")
    def token_name(token_id: int):
        return _json(resolver.token_name(network, token_id))

    @router.get("/tokens/{token_id}/info")
    def token_info(token_id: int):
        return _json(resolver.token_info(network, token_id))

    # Resolution
    @router.get("/resolve-name/{full_name}")
    def resolve_name(full_name: str):
        return _json(resolver.resolve_name(network, full_name))

    @router.get("/btc-address/{full_name}")
    def btc_address(full_name: str):
        return _json(resolver.btc_address(network, full_name))

    @router.get("/subdomains/{full_name}")
    def subdomains(full_name: str):
        return _json(resolver.subdomains(network, full_name))

    @router.get("/subdomain/{full_subdomain}/owner")
    def subdomain_owner(full_subdomain: str):
        return _json(resolver.subdomain_owner(network, full_subdomain))

    @router.get("/subdomain/{full_subdomain}")
    def subdomain(full_subdomain: str):
        return _json(resolver.subdomain(network, full_subdomain))

    @router.get("/zonefile/{full_name}/raw")
    def raw_zonefile(full_name: str):
        return _json(resolver.raw_zonefile(network, full_name))

    @router.get("/zonefile/{full_name}/profile")
    def profile_zonefile(full_name: str):
        return _json(resolver.profile_zonefile(network, full_name))

    return router


def create_app(
    resolver: Resolver,
    networks: Mapping[str, NetworkConfig],
    cors_cfg: Optional[Dict[str, Any]] = None,
) -> FastAPI:
    """Create and configure the FastAPI app exposing the query surface.

    Inputs:
      - resolver: Resolver instance shared by every network.
      - networks: Mapping of network name -> NetworkConfig.
      - cors_cfg: Optional dict with 'enabled' and 'allowlist'.

    Outputs:
      - Configured FastAPI application instance.

    Example:
      >>> app = create_app(resolver, build_networks(None), {"enabled": True})
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        install_uvicorn_2xx_suppression()
        yield

    app = FastAPI(title="BNS Resolver API", lifespan=lifespan)
    app.state.resolver = resolver
    app.state.networks = dict(networks)

    cors_cfg = cors_cfg or {}
    if cors_cfg.get("enabled"):
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_cfg.get("allowlist") or ["*"],
            allow_credentials=False,
            allow_methods=["GET", "OPTIONS"],
            allow_headers=["*"],
        )

    @app.exception_handler(ResolverError)
    async def _resolver_error(request: Request, exc: ResolverError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Rejected parameters for %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request parameters"})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error serving %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    # Prefixed networks first so '/testnet/...' never reaches mainnet routes.
    ordered = sorted(networks.values(), key=lambda n: n.route_prefix == "")
    for network in ordered:
        app.include_router(build_router(resolver, network), prefix=network.route_prefix)

    return app


class HealthProbe:
    """Background thread calling store.check_health() on a fixed interval.

    Inputs (constructor):
      - store: NameStore to probe.
      - interval_seconds: Seconds between probes.

    Outputs:
      - HealthProbe with start(), stop() and the last observed `healthy` flag.
    """

    def __init__(self, store: NameStore, interval_seconds: float = 300.0) -> None:
        self.store = store
        self.interval_seconds = float(interval_seconds)
        self.healthy: Optional[bool] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def probe_once(self) -> bool:
        healthy = bool(self.store.check_health())
        if not healthy:
            logger.warning("Database health check failed")
        elif self.healthy is False:
            logger.info("Database connection restored")
        self.healthy = healthy
        return healthy

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.probe_once()
            except Exception:  # pragma: no cover - keep the probe thread alive
                logger.exception("Unhandled exception in health probe")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="bnsresolver-health", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)


class WebServerHandle:
    """Handle for a background uvicorn thread.

    Inputs (constructor):
      - thread: Thread object running the uvicorn server loop.
      - server: Optional uvicorn.Server instance.

    Outputs:
      - WebServerHandle instance with stop() and is_running().
    """

    def __init__(self, thread: threading.Thread, server: Any | None = None) -> None:
        self._thread = thread
        self._server = server

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait for the thread."""
        if self._server is not None:
            self._server.should_exit = True
        self._thread.join(timeout=timeout)


def start_webserver(
    resolver: Resolver,
    networks: Mapping[str, NetworkConfig],
    http_cfg: Any,
) -> Optional[WebServerHandle]:
    """Start the HTTP query server with uvicorn in a daemon thread.

    Inputs:
      - resolver: Resolver instance.
      - networks: Mapping of network name -> NetworkConfig.
      - http_cfg: HttpConfig model (host, port, cors, enabled).

    Outputs:
      - WebServerHandle, or None when the listener is disabled.
    """

    if not http_cfg.enabled:
        return None

    import uvicorn

    app = create_app(resolver, networks, http_cfg.cors.model_dump())
    config_uvicorn = uvicorn.Config(app, host=http_cfg.host, port=http_cfg.port, log_level="info")
    server = uvicorn.Server(config_uvicorn)

    def _runner() -> None:
        try:
            server.run()
        except Exception:  # pragma: no cover - environment specific
            logger.exception("Unhandled exception in webserver thread")

    thread = threading.Thread(target=_runner, name="bnsresolver-webserver", daemon=True)
    thread.start()
    logger.info("Started bnsresolver webserver on %s:%d", http_cfg.host, http_cfg.port)
    return WebServerHandle(thread, server)
