"""
Entry point: serve the console HTTP API.

Usage::

    python server.py
"""

import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from src.api import create_app  # noqa: E402
from src.config import get_settings  # noqa: E402

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)

app = create_app(settings=settings)


if __name__ == "__main__":
    print("\n  Campaign Orchestrator API")
    print(f"  http://localhost:{settings.port}\n")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
