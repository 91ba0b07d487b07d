"""Shared pytest fixtures for all test layers."""

import os
import tempfile

# Must be set before flat_viewer.config is imported, otherwise load_dotenv()
# may pick up a developer's .env and the real token store.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault(
    "TOKEN_STORE_PATH", os.path.join(tempfile.mkdtemp(prefix="flat-viewer-"), "store.json")
)
