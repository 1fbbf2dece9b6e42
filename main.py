"""
main.py — certification exam client launcher

Starts the local companion server and opens the exam UI in the default
browser. The remote exam service and the local port come from the
command line, falling back to config.py (environment variables).
"""

import argparse
import logging
import socket
import sys
import threading
import time
import webbrowser

import uvicorn

from config import API_BASE_URL, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, SERVER_START_TIMEOUT
from api.app import create_app

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    try:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s [%(levelname)s] %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout)
            ]
        )
    except PermissionError:
        # log file locked: console only
        logging.basicConfig(level=logging.INFO)


def _find_free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def _wait_for_server(host: str, port: int, timeout: float = SERVER_START_TIMEOUT) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Local client for timed certification exams.")
    parser.add_argument("--api-url", default=API_BASE_URL, help="Exam service base URL")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Local bind address")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Local port (0 = any free port)")
    parser.add_argument("--no-browser", action="store_true", help="Do not open the browser")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    _setup_logging()
    logger.info("=== Certification Exam Client Started ===")

    port = args.port or _find_free_port(args.host)
    app = create_app(api_base_url=args.api_url)
    logger.info(f"Starting uvicorn on {args.host}:{port} (exam service: {args.api_url})")
    server_thread = threading.Thread(
        target=uvicorn.run,
        args=(app,),
        kwargs={"host": args.host, "port": port, "log_level": "error"},
        daemon=True,
    )
    server_thread.start()

    if not _wait_for_server(args.host, port):
        logger.error("Server did not start in time. Check for a stale process holding the port.")
        return 1

    url = f"http://{args.host}:{port}"
    logger.info(f"Server ready at {url}")
    if not args.no_browser:
        webbrowser.open(url)

    # keep the main thread alive
    try:
        while server_thread.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopped by user.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
