"""Command-line entry point that serves the raid API with uvicorn."""

from __future__ import annotations

import argparse
import logging

from pokeraid.backend.config import BackendSettings, load_settings
from pokeraid.backend.logs import configure_logging

logger = logging.getLogger("pokeraid.server")


def parse_args(settings: BackendSettings, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pokeraid room server")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--log-level", default=settings.log_level)
    parser.add_argument("--reload", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    args = parse_args(settings, argv)
    configure_logging(args.log_level.upper())

    import uvicorn

    backend = "postgres" if settings.database_url else "in-memory"
    logger.info("Serving raid API on %s:%s (%s store)", args.host, args.port, backend)
    uvicorn.run(
        "pokeraid.backend.api:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
