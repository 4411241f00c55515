#!/usr/bin/env python3
"""
Tiny launcher for the backend. Loads .env, honors HOST/PORT/DEBUG,
and starts uvicorn pointing at labdesk.main:app.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
import uvicorn


def main() -> None:
    # Ensure CWD is the backend dir so .env and imports resolve
    backend_dir = Path(__file__).resolve().parent
    os.chdir(backend_dir)

    # Load .env before labdesk.config builds its Settings
    load_dotenv(backend_dir / ".env", override=False)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    debug = str(os.getenv("DEBUG", "false")).lower() == "true"

    uvicorn.run(
        "labdesk.main:app",
        host=host,
        port=port,
        reload=debug,
        log_level="debug" if debug else "info",
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(130)
