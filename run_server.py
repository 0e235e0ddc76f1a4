#!/usr/bin/env python
"""
Server entry point for the vehicle specification API.

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
    Gunicorn:     python run_server.py --gunicorn
                  (gunicorn vehicle_specs.main:app -c gunicorn.conf.py)
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

APP_PATH = "vehicle_specs.main:app"


def run_dev_server(port: int):
    """Uvicorn with auto-reload over the package sources."""
    import uvicorn

    uvicorn.run(
        APP_PATH,
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["vehicle_specs"],
        log_level="debug",
    )


def run_prod_server(port: int):
    import uvicorn

    uvicorn.run(
        APP_PATH,
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 4)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn() -> int:
    return subprocess.run(["gunicorn", APP_PATH, "-c", "gunicorn.conf.py"]).returncode


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Vehicle Specification API server")
    parser.add_argument("--dev", action="store_true", help="Development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 8000)))
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.port)
    elif args.gunicorn:
        os.environ.setdefault("BIND", f"0.0.0.0:{args.port}")
        sys.exit(run_gunicorn())
    else:
        run_prod_server(args.port)
