# CLO Core - Main Entry Point
#
# Starts the local API server. Host and port default to the CLO_HOST and
# CLO_PORT settings (127.0.0.1:8000). Without CLO_BOOTSTRAP_TOKEN a random
# bootstrap secret is generated and printed for the embedding app.

import argparse
import logging
import secrets

from . import __version__
from .config import Settings
from .core import EventSeverity, EventType, configure_audit_logger


def main():
    """Main entry point for the CLO backend."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="CLO Core - vault and integrations backend for the CLO app",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to bind to (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"CLO Core v{__version__}",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    configure_audit_logger(settings.audit_log_dir).log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="CLO Core starting",
        details={"version": __version__, "host": args.host, "port": args.port},
    )

    if settings.bootstrap_token is None:
        # One secret per run, handed to the embedding app on stdout
        settings.bootstrap_token = secrets.token_urlsafe(32)
        print(f"CLO_BOOTSTRAP_TOKEN={settings.bootstrap_token}", flush=True)

    from .api.main import start_api_server

    start_api_server(host=args.host, port=args.port, settings=settings)


if __name__ == "__main__":
    main()
