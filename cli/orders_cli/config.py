"""
Configuration for the Live Orders CLI.

API URL resolution order:
  1. --api-url command line flag
  2. ORDERS_API_URL environment variable
  3. Fallback: http://localhost:8000
"""

from __future__ import annotations

import os

DEFAULT_API_URL = "http://localhost:8000"


def resolve_api_url(override: str | None = None) -> str:
    """Pick the API URL to talk to."""
    url = override or os.environ.get("ORDERS_API_URL") or DEFAULT_API_URL
    return url.rstrip("/")
