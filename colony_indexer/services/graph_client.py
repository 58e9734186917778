"""
HTTP client for GraphQL endpoints (subgraph, profile server, AppSync).

``query`` never raises: any transport or decoding failure is logged and
reported as ``None`` so callers can treat it as "no data this round".
"""
from typing import Any, Dict, Optional

import httpx

from colony_indexer.utils.logger import logger


class GraphClient:
    """
    Thin GraphQL-over-HTTP client.

    Used for:
    - Subgraph snapshot and event stream queries
    - Profile server user / subscriber queries
    - AppSync-style create mutations in the GraphQL persistence sink
    """

    def __init__(
        self,
        default_endpoint: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the GraphQL client.

        Args:
            default_endpoint: Endpoint used when ``query`` is not given one
            timeout: Request timeout in seconds (default 30.0)
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.default_endpoint = default_endpoint
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def query(
        self,
        document: str,
        variables: Optional[Dict[str, Any]] = None,
        endpoint: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Run a query or mutation.

        Args:
            document: GraphQL document
            variables: Variables for the document
            endpoint: Endpoint URL, defaults to ``default_endpoint``
            headers: Extra headers (auth tokens, api keys)

        Returns:
            The decoded response body (``{"data": ..., "errors": ...}``) or None
            if the request failed
        """
        url = endpoint or self.default_endpoint
        if not url:
            logger.error("[GraphClient] No endpoint configured for query")
            return None

        request_headers = {**(headers or {}), "Content-Type": "application/json"}
        try:
            response = self.client.post(
                url,
                json={"query": document, "variables": variables or {}},
                headers=request_headers,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error("[GraphClient] Request to %s failed: %s", url, e)
            return None
        except ValueError as e:
            logger.error("[GraphClient] Invalid JSON from %s: %s", url, e)
            return None

        if not isinstance(body, dict):
            logger.error("[GraphClient] Unexpected response shape from %s", url)
            return None
        if body.get("errors"):
            logger.warning("[GraphClient] %s returned errors: %s", url, body["errors"])
        return body

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
