import argparse
import logging

from config import config
from market_server.app import create_app


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATE_FORMAT,
    )


def parse_args():
    """Parse simple CLI arguments for running the server.

    Supports overriding the port and disabling the presence sweeper
    in environments where it is managed separately.
    """
    parser = argparse.ArgumentParser(description='Run the marketplace realtime messaging server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: 5000 or PORT env)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    parser.add_argument('--no-sweeper', action='store_true', help='Do not start the presence sweeper thread')
    return parser.parse_args()


def main():
    args = parse_args()
    configure_logging()
    config.validate_required()
    app = create_app(start_sweeper=config.PRESENCE_SWEEPER_ENABLED and not args.no_sweeper)
    socketio = app.extensions['socketio']
    logging.getLogger(__name__).info(f"Starting {config.APP_NAME} on port {args.port} ({config.CURRENT_ENV})")
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True)


if __name__ == "__main__":
    main()
