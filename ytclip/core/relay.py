"""
Remote storage relay: uploads a finished MP3 to a Supabase Storage bucket.
Uses the Storage REST API directly.
"""

import logging
from pathlib import Path
from urllib.parse import quote

import requests

from ytclip.core.error_codes import RelayError
from ytclip.core.constants import RELAY_TIMEOUT

logger = logging.getLogger(__name__)


class SupabaseStorageRelay:
    """Relay target backed by a public Supabase Storage bucket."""

    def __init__(self, base_url: str, api_key: str, bucket: str,
                 timeout: int = RELAY_TIMEOUT, session: requests.Session | None = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, content_type: str) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type,
            "x-upsert": "true",
        }

    def object_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(name)}"

    def public_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(name)}"

    def upload(self, local_path: Path, dest_name: str,
               content_type: str = "audio/mpeg") -> str:
        """
        Upload local_path as dest_name; returns the public URL.
        Raises RelayError on any failure.
        """
        try:
            with open(local_path, 'rb') as f:
                resp = self.session.post(
                    self.object_url(dest_name),
                    headers=self._headers(content_type),
                    data=f,
                    timeout=self.timeout,
                )
        except OSError as e:
            raise RelayError(f"Cannot read {local_path.name}: {e}")
        except requests.exceptions.Timeout:
            raise RelayError("Storage upload timed out")
        except requests.exceptions.RequestException as e:
            raise RelayError(f"Storage unreachable: {e}")

        if resp.status_code not in (200, 201):
            raise RelayError(f"Storage upload failed (HTTP {resp.status_code})",
                             detail=resp.text[:500])

        url = self.public_url(dest_name)
        logger.info("Relayed %s -> %s", local_path.name, url)
        return url
