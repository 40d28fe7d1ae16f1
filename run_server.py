#!/usr/bin/env python
"""
Server Entry Point

    python run_server.py --dev         # uvicorn with reload on 127.0.0.1
    python run_server.py               # uvicorn workers on API_HOST:API_PORT
    python run_server.py --gunicorn    # gunicorn with gunicorn.conf.py
"""

import argparse
import os
import subprocess

import uvicorn

from src.config import get_settings

APP = "src.main:app"


def run_dev_server(port: int):
    uvicorn.run(APP, host="127.0.0.1", port=port, reload=True, reload_dirs=["src"], log_level="debug")


def run_prod_server(host: str, port: int, workers: int):
    uvicorn.run(
        APP,
        host=host,
        port=port,
        workers=workers,
        log_level=get_settings().logging.level.lower(),
        proxy_headers=True,
        server_header=False,
    )


def run_gunicorn(host: str, port: int):
    env = dict(os.environ, BIND=f"{host}:{port}")
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], env=env, check=True)


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Retail Warehouse Analytics API Server")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dev", action="store_true", help="Auto-reload development server")
    mode.add_argument("--gunicorn", action="store_true", help="Run under gunicorn")
    parser.add_argument("--host", default=settings.api.host)
    parser.add_argument("--port", type=int, default=settings.api.port)
    parser.add_argument("--workers", type=int, default=int(os.getenv("WORKERS", 4)))
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.port)
    elif args.gunicorn:
        run_gunicorn(args.host, args.port)
    else:
        run_prod_server(args.host, args.port, args.workers)


if __name__ == "__main__":
    main()
