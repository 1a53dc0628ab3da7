# src/tierstake/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from tierstake.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so TIERSTAKE_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from tierstake.api.app import create_app
    from tierstake.runtime.structured_log import configure_structured_logging

    configure_structured_logging()

    host = os.getenv("TIERSTAKE_API_HOST", "127.0.0.1")
    port = int(os.getenv("TIERSTAKE_API_PORT", "8080"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
