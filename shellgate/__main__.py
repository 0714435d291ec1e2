"""
Run the ShellGate API server.

    python -m shellgate
"""
import logging

import uvicorn

from .app import create_app
from .config import DEFAULT_PORT


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"Starting server on port {DEFAULT_PORT}")
    uvicorn.run(create_app(), host="127.0.0.1", port=DEFAULT_PORT, log_level="warning")


if __name__ == "__main__":
    main()
