"""
Attendance Service - Main Entry Point

Runs one camera's tracking / attendance loop together with the
monitoring API until interrupted.
"""

import argparse
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Dict, Optional

from .app import create_app
from .config import Config, load_config, load_properties_file
from .errors import AttendanceServiceError, ConfigError
from .logging_config import get_logger, setup_logging
from .service import AttendanceService, build_service

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from attendance_service/.env if present."""
    env_path = Path(__file__).resolve().parent / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Attendance Service - face tracking and attendance marking'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to a key=value properties file (e.g. tracking.maxAge=10)'
    )

    parser.add_argument(
        '--scope',
        type=str,
        help='Scope (course id) of the first session (or set SESSION_SCOPE)'
    )

    parser.add_argument(
        '--camera-source',
        type=str,
        help='Camera index or stream URL (or set CAMERA_SOURCE)'
    )

    parser.add_argument(
        '--backend-url',
        type=str,
        help='Backend API URL (or set BACKEND_URL)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def build_properties(args: argparse.Namespace) -> Dict[str, str]:
    """Merge the properties file with command line overrides."""
    properties = load_properties_file(args.config) if args.config else {}

    overrides = {
        'session.scope': args.scope,
        'camera.source': args.camera_source,
        'backend.url': args.backend_url,
        'debug': 'true' if args.debug else None,
    }
    properties.update({k: v for k, v in overrides.items() if v is not None})
    return properties


def start_flask_server(service: AttendanceService, config: Config) -> None:
    """Start Flask server (run in a background thread)."""
    logger.info(f'Starting monitoring API on port {config.service_port}...')
    app = create_app(service)
    app.run(
        host='0.0.0.0',
        port=config.service_port,
        threaded=True,
        debug=False,
        use_reloader=False
    )


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args(argv)

    try:
        config = load_config(build_properties(args))
    except ConfigError as e:
        print(f'Configuration error: {e}', file=sys.stderr)
        sys.exit(2)

    setup_logging(config.camera_id, config.debug_mode)

    logger.info('=' * 60)
    logger.info('Attendance Service')
    logger.info('=' * 60)
    logger.info(f'Camera: {config.camera_id}')
    logger.info(f'Backend: {config.backend_url}')
    logger.info(f'Scope: {config.session_scope or "(all enrollees)"}')
    logger.info('=' * 60)

    shutdown = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info(f'Received signal {signum}, shutting down...')
        shutdown.set()

    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        service = build_service(config)
    except AttendanceServiceError as e:
        logger.error(f'Startup failed: {e}')
        sys.exit(1)

    flask_thread = threading.Thread(
        target=start_flask_server, args=(service, config), daemon=True
    )
    flask_thread.start()
    logger.info(f'Video stream: http://localhost:{config.service_port}/video_feed')

    try:
        service.start()
        while not shutdown.is_set():
            shutdown.wait(1.0)
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
    except AttendanceServiceError as e:
        logger.error(f'Fatal error: {e}', exc_info=True)
        sys.exit(1)
    finally:
        service.stop()


if __name__ == '__main__':
    main()
