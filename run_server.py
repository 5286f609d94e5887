#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:     python run_server.py --dev
    Production:      python run_server.py
    Gunicorn:        python run_server.py --gunicorn
    Reconcile once:  python run_server.py --reconcile

    Or directly:
    gunicorn ecotrack.main:app -c gunicorn.conf.py
"""

import argparse
import asyncio
import os
import subprocess

import uvicorn

from ecotrack.config import get_settings

settings = get_settings()


def run_dev_server(port: int):
    """Run development server with auto-reload."""
    uvicorn.run(
        "ecotrack.main:app",
        host=settings.api_host,
        port=port,
        reload=True,
        reload_dirs=["ecotrack"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(port: int):
    """Run production server with Uvicorn directly."""
    uvicorn.run(
        "ecotrack.main:app",
        host=settings.api_host,
        port=port,
        workers=settings.api_workers,
        log_level=settings.monitoring.log_level.lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
        date_header=True,
    )


def run_gunicorn(port: int):
    """Run with Gunicorn (recommended for production)."""
    env = {**os.environ, "BIND": f"{settings.api_host}:{port}"}
    subprocess.run(["gunicorn", "ecotrack.main:app", "-c", "gunicorn.conf.py"], env=env, check=True)


def run_reconciliation():
    from workflows.reconcile_stores import reconcile_stores

    result = asyncio.run(reconcile_stores())
    print(f"Reconciliation {result['status']}: {len(result['stores'])} stores, {len(result['failed'])} failed")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="EcoTrack Sustainability API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run with Gunicorn (production)")
    parser.add_argument("--reconcile", action="store_true", help="Reconcile all stores once and exit")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to run on")

    args = parser.parse_args()

    if args.reconcile:
        run_reconciliation()
    elif args.dev:
        print("Starting development server...")
        run_dev_server(args.port)
    elif args.gunicorn:
        print("Starting production server with Gunicorn...")
        run_gunicorn(args.port)
    else:
        print("Starting production server with Uvicorn...")
        run_prod_server(args.port)
