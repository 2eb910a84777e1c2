from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional

from .cache.registry import load_cache_plugin
from .chain.height import HeightOracle
from .config.config_parser import parse_config_file
from .config.logging_config import init_logging
from .config.models import load_sections
from .networks import build_networks
from .resolver import Resolver
from .servers.webserver import HealthProbe, start_webserver
from .store.postgresql import PostgresNameStore
from .subdomains.fetcher import ExternalSubdomainFetcher


def build_resolver(cfg: Dict[str, Any], sections: Dict[str, Any], store: Any = None) -> Resolver:
    """Brief: Wire cache, height oracle, fetcher and store into a Resolver.

    Inputs:
      - cfg: Validated configuration mapping.
      - sections: Typed sections from load_sections(cfg).
      - store: Optional NameStore; a PostgresNameStore is opened when omitted.

    Outputs:
      - Resolver instance.
    """

    cache_cfg = cfg.get("cache")
    cache = load_cache_plugin(cache_cfg)
    ttls = cache_cfg.get("ttls") if isinstance(cache_cfg, dict) else None

    if store is None:
        db = sections["database"]
        store = PostgresNameStore(
            host=db.host,
            port=db.port,
            user=db.user,
            password=db.password,
            database=db.database,
            statement_timeout_ms=db.statement_timeout_ms,
            connect_kwargs=db.connect_kwargs,
        )

    ext = sections["external_files"]
    resolver = Resolver(
        store,
        HeightOracle(cache, ttl=int((ttls or {}).get("height", 60))),
        ExternalSubdomainFetcher(
            cache,
            max_bytes=ext.max_bytes,
            timeout_seconds=ext.timeout_seconds,
            allowed_host_patterns=ext.allowed_host_patterns,
            blocked_host_patterns=ext.blocked_host_patterns,
            ttl=int((ttls or {}).get("external_file", 300)),
        ),
        cache,
        ttls=ttls,
        max_limit=sections["http"].max_limit,
    )
    return resolver


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the resolver service.
    Parses arguments, loads configuration, opens the store and serves HTTP.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            PYTHONPATH=src python -m bnsresolver.main --config config.yaml -v DB_PASSWORD=secret
    """
    parser = argparse.ArgumentParser(description="BNS name resolver HTTP service")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Override a config variable (repeatable; overrides environment and file)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config, cli_vars=args.var)
        sections = load_sections(cfg)
        networks = build_networks(cfg.get("networks"))
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(cfg.get("logging"))
    logger = logging.getLogger("bnsresolver.main")
    logger.info("Loaded config from %s", args.config)

    try:
        resolver = build_resolver(cfg, sections)
    except (KeyError, RuntimeError, TypeError, ValueError) as exc:
        logger.error("Failed to initialize resolver: %s", exc)
        return 1

    probe = HealthProbe(resolver.store, sections["database"].health_interval_seconds)
    probe.start()

    handle = start_webserver(resolver, networks, sections["http"])
    if handle is None:
        logger.error("server.http.enabled is false; nothing to serve")
        probe.stop()
        resolver.store.close()
        return 1

    shutdown_event = threading.Event()

    def _on_term(signum: int, frame: Optional[Any]) -> None:
        logger.info("Received signal %d, shutting down", signum)
        shutdown_event.set()

    try:
        signal.signal(signal.SIGTERM, _on_term)
    except ValueError:  # pragma: no cover - not on the main thread
        logger.warning("Could not install SIGTERM handler")

    logger.info("Startup Completed")
    exit_code = 0
    try:
        while not shutdown_event.is_set():
            if not handle.is_running():
                logger.error("Webserver thread exited unexpectedly")
                exit_code = 1
                break
            shutdown_event.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        handle.stop()
        probe.stop()
        resolver.store.close()

    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
