"""``beacon-server``: run the Beacon API under uvicorn."""

import argparse
import os


def _apply_overrides(args: argparse.Namespace) -> None:
    # Settings are read at import time, so overrides go through the environment first
    if args.local:
        os.environ["BEACON_LOCAL_MODE"] = "1"
    if args.database_url:
        os.environ["BEACON_DATABASE_URL"] = args.database_url
    if args.log_level:
        os.environ["BEACON_LOG_LEVEL"] = args.log_level


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="beacon-server",
        description="Beacon API server: rate limiting, notifications and escalations",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--local", action="store_true", help="SQLite database in the working directory, no Redis")
    parser.add_argument("--database-url", help="Overrides BEACON_DATABASE_URL")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"])
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args(argv)

    if args.reload and args.workers > 1:
        parser.error("--reload cannot be combined with --workers")
    _apply_overrides(args)

    import uvicorn

    uvicorn.run(
        "beacon.main:app",
        host=args.host,
        port=args.port,
        workers=args.workers,
        reload=args.reload,
        log_level=args.log_level or "info",
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
