"""
Metadata persistence: inserts a record per finished extraction into a
Supabase (PostgREST) table.
"""

import logging

import requests

from ytclip.core.error_codes import PersistenceError
from ytclip.core.constants import PERSISTENCE_TIMEOUT, DEFAULT_METADATA_TABLE

logger = logging.getLogger(__name__)


class SupabaseMetadataStore:
    """Writes {title, date, mp3_file, txt_file} rows."""

    def __init__(self, base_url: str, api_key: str, table: str = DEFAULT_METADATA_TABLE,
                 timeout: int = PERSISTENCE_TIMEOUT, session: requests.Session | None = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.table = table
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def save_record(self, title: str, date: str, media_reference: str,
                    aux_reference: str = "") -> dict:
        """
        Insert one record; returns the stored row.
        Raises PersistenceError on any failure.
        """
        record = {
            "title": title,
            "date": date,
            "mp3_file": media_reference,
            "txt_file": aux_reference,
        }
        try:
            resp = self.session.post(self.table_url, headers=self._headers(),
                                     json=[record], timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise PersistenceError("Metadata insert timed out")
        except requests.exceptions.RequestException as e:
            raise PersistenceError(f"Metadata store unreachable: {e}")

        if resp.status_code not in (200, 201):
            raise PersistenceError(f"Metadata insert failed (HTTP {resp.status_code})",
                                   detail=resp.text[:500])

        try:
            rows = resp.json()
        except ValueError:
            rows = []
        row = rows[0] if isinstance(rows, list) and rows else record
        logger.info("Saved metadata record for %r", title)
        return row

    def ping(self) -> bool:
        """Cheap connectivity check used at startup."""
        try:
            resp = self.session.head(self.table_url, headers=self._headers(),
                                     params={"select": "*", "limit": "1"},
                                     timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Metadata store connection test failed: %s", e)
            return False
        return resp.status_code < 400
