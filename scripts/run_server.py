"""Script to launch the admin relay bot server."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

# Ensure src/ is on sys.path (so imports work when run directly)
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from admin_relay.config import load_settings  # noqa: E402
from admin_relay.errors import ConfigError  # noqa: E402
from admin_relay.server import create_app  # noqa: E402

logger = logging.getLogger("admin_relay")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the admin relay bot.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Optional YAML config file (default: $ADMIN_RELAY_CONFIG or config/default.yaml)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST", "0.0.0.0"),
        help="Host to bind the server to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: PORT setting, 3000)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error("configuration error: %s", e)
        sys.exit(1)
    logging.getLogger().setLevel(settings.log_level)

    app = create_app(settings=settings)
    port = args.port or settings.port
    logger.info("starting in %s mode on port %d", settings.delivery_mode, port)

    # single worker: session and screen state live in this process
    uvicorn.run(app, host=args.host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
