"""HTTP client for the spreadsheet that mirrors the release channel."""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


class SheetClient:
    """Fetches rows from an opensheet-style JSON endpoint.

    Failures never propagate: the dashboard shows an empty list instead, and
    ``last_error`` describes what went wrong until the next successful fetch.
    """

    def __init__(self, url: str, timeout: float = 15.0, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "release-notes-dashboard/0.1.0"})
        self.last_error: str | None = None

    def fetch_rows(self) -> list[Any]:
        """Return the sheet rows, or an empty list if they cannot be fetched."""

        if not self.url:
            logger.warning("No sheet URL configured; nothing to fetch")
            self.last_error = "No sheet URL configured"
            return []

        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching sheet data from {self.url}: {e}")
            self.last_error = f"Fetch failed: {e}"
            return []
        except ValueError as e:
            logger.error(f"Sheet response from {self.url} is not valid JSON: {e}")
            self.last_error = f"Invalid JSON: {e}"
            return []

        if not isinstance(rows, list):
            logger.error(f"Unexpected sheet payload type: {type(rows).__name__}")
            self.last_error = f"Unexpected payload type: {type(rows).__name__}"
            return []

        self.last_error = None
        logger.info(f"Fetched {len(rows)} row(s) from sheet")
        return rows
