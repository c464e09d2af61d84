#!/usr/bin/env python3
"""
ProjectFlow: launch the web dashboard.

Usage:
    python main.py                          # http://localhost:8000
    python main.py --port 9000              # http://localhost:9000
    python main.py --host 0.0.0.0           # listen on all interfaces
    python main.py --db /path/to/projectflow.sqlite --storage /path/to/storage
    python main.py --reload                 # auto-reload on code changes
"""

from __future__ import annotations

import argparse
import os
import threading
import webbrowser
from pathlib import Path

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Launch the ProjectFlow web interface.",
    )
    parser.add_argument(
        "--host", default=os.getenv("APP_HOST", "127.0.0.1"),
        help="Bind address (default: 127.0.0.1 or APP_HOST env var)",
    )
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("APP_PORT", "8000")),
        help="Port to listen on (default: 8000 or APP_PORT env var)",
    )
    parser.add_argument(
        "--db", type=Path, default=None,
        help="Path to SQLite database (default: projectflow.sqlite or APP_DB_PATH env var)",
    )
    parser.add_argument(
        "--storage", type=Path, default=None,
        help="Directory for uploaded files (default: storage or APP_STORAGE_DIR env var)",
    )
    parser.add_argument(
        "--reload", action="store_true",
        help="Enable auto-reload on file changes (development mode)",
    )
    parser.add_argument(
        "--no-browser", action="store_true",
        help="Don't open a browser window automatically",
    )
    args = parser.parse_args()

    # uvicorn imports api.app fresh (and again per reload), so settings go via env
    if args.db is not None:
        os.environ["APP_DB_PATH"] = str(args.db)
    if args.storage is not None:
        os.environ["APP_STORAGE_DIR"] = str(args.storage)

    db_path = Path(os.getenv("APP_DB_PATH", "projectflow.sqlite"))
    storage_dir = Path(os.getenv("APP_STORAGE_DIR", "storage"))
    if not db_path.exists():
        print(f"Database not found at {db_path}; it will be created on startup.")
        print("  Run 'python seed_sample_data.py' for a demo account with sample data.")
        print()

    url = f"http://{'localhost' if args.host == '0.0.0.0' else args.host}:{args.port}"
    print(f"Starting ProjectFlow at {url}")
    print(f"Database: {db_path}")
    print(f"Storage:  {storage_dir}")
    print()

    if not args.no_browser:
        # Open browser after a short delay to let the server start
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()

    uvicorn.run(
        "api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
