import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Upstream bookings API (the authenticated request primitive talks to this)
BOOKINGS_API_URL = os.getenv("BOOKINGS_API_URL", "http://localhost:5000/api")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "30"))

# Endpoint templates on the upstream API
ENTITIES_ENDPOINT = os.getenv("ENTITIES_ENDPOINT", "/entities/mine")
RECORDS_ENDPOINT = os.getenv("RECORDS_ENDPOINT", "/entities/{entity_id}/bookings")
BOOKINGS_ENDPOINT = os.getenv("BOOKINGS_ENDPOINT", "/bookings")

# Fan-out settings - a fetch slower than FETCH_TIMEOUT_SECONDS counts as a failed source
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))
FETCH_CONCURRENCY = int(os.getenv("FETCH_CONCURRENCY", "8"))

# List view defaults
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

# Calendar days and "today" are computed in this timezone
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "UTC")

# Collation locale for text sorts; empty means the environment's LC_* settings
SORT_LOCALE = os.getenv("SORT_LOCALE", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Frontend base URL for CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
