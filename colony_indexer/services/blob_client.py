"""
Content-addressed blob gateway (IPFS over HTTP).
"""
from typing import Any, Dict, Optional

import httpx

from colony_indexer.utils.logger import logger


class BlobClient:
    """Fetches JSON blobs from ``<gateway>/<hash>``."""

    def __init__(
        self,
        gateway_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.gateway_url = gateway_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def resolve(self, content_hash: str) -> Optional[Dict[str, Any]]:
        """Return the decoded JSON for a hash, or None if it can't be fetched."""
        if not content_hash:
            return None
        url = f"{self.gateway_url}/{content_hash}"
        try:
            response = self.client.get(url, headers={"Content-Type": "application/json"})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error("[BlobClient] Could not fetch %s: %s", content_hash, e)
            return None
        except ValueError as e:
            logger.error("[BlobClient] %s is not JSON: %s", content_hash, e)
            return None

        if not isinstance(body, dict):
            # avatars and other raw payloads get wrapped so the cache stays dict-shaped
            return {"value": body}
        return body

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
