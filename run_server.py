#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py --workers 4
    Gunicorn:     python run_server.py --gunicorn
                  (same as: gunicorn carwash.main:app -c gunicorn.conf.py)

Host and port default to API_HOST / API_PORT.
"""

import argparse
import subprocess

import uvicorn

from carwash.config import get_settings

APP = "carwash.main:app"


def run_dev_server(host: str, port: int) -> None:
    """Single process with auto-reload on source changes."""
    uvicorn.run(
        APP,
        host=host,
        port=port,
        reload=True,
        reload_dirs=["carwash"],
        log_level="debug",
    )


def run_prod_server(host: str, port: int, workers: int, log_level: str) -> None:
    uvicorn.run(
        APP,
        host=host,
        port=port,
        workers=workers,
        log_level=log_level,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn() -> int:
    return subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"]).returncode


def main() -> None:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Car Wash Customer Management API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--host", default=settings.api_host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to listen on")
    parser.add_argument("--workers", type=int, default=1, help="Uvicorn worker processes")
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.host, args.port)
    elif args.gunicorn:
        raise SystemExit(run_gunicorn())
    else:
        run_prod_server(args.host, args.port, args.workers, settings.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
