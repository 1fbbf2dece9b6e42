import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# Local server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "0"))      # 0 = pick a free port
SERVER_START_TIMEOUT = 15.0

# Remote exam/grading service
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api").rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))

# Browser sessions
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))          # 1 hour
CLEANUP_INTERVAL = int(os.getenv("CLEANUP_INTERVAL", "300"))  # every 5 minutes

# Exam countdown
TICK_SECONDS = float(os.getenv("TICK_SECONDS", "1"))
TIME_WARNING_SECONDS = 600      # under 10 minutes the timer turns red
AUTO_SUBMIT_RETRIES = 3
BACKOFF_BASE = 1.0
