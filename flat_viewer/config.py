"""Runtime configuration, read from the environment (and .env) once at import."""

import os

from dotenv import load_dotenv

load_dotenv()

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
GITHUB_RAW_URL = os.getenv("GITHUB_RAW_URL", "https://raw.githubusercontent.com")
GITHUB_TIMEOUT_SECONDS = float(os.getenv("GITHUB_TIMEOUT_SECONDS", "30"))

# Query text typed by the user settles for this long before it executes
QUERY_DEBOUNCE_SECONDS = float(os.getenv("QUERY_DEBOUNCE_SECONDS", "0.5"))

# Consumers truncate invalid_value strings to this many characters for display
INVALID_VALUE_DISPLAY_LIMIT = int(os.getenv("INVALID_VALUE_DISPLAY_LIMIT", "3000"))

TOKEN_STORE_PATH = os.getenv(
    "TOKEN_STORE_PATH", os.path.join(os.path.expanduser("~"), ".flat-viewer", "store.json")
)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
