"""
Profile server client.

The server hands out bearer tokens through a challenge/response handshake:
the indexer posts its wallet address, signs the returned challenge with its
private key and trades the signature for a token.
"""
import threading
from typing import Any, Dict, List, Optional

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct

from colony_indexer.exceptions import TransportError
from colony_indexer.queries.server import GET_COLONY_MEMBERS, GET_USER
from colony_indexer.services.graph_client import GraphClient
from colony_indexer.utils.logger import logger


class ProfileServerClient:
    """Authenticated access to user profiles and colony subscribers."""

    def __init__(
        self,
        server_address: str,
        graph_client: GraphClient,
        private_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the profile server client.

        Args:
            server_address: Base URL of the profile server
            graph_client: GraphQL client used for ``<server>/graphql`` queries
            private_key: Key used to sign auth challenges. Without one, queries
                are sent unauthenticated.
            timeout: Request timeout in seconds for the auth handshake
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.server_address = server_address.rstrip("/")
        self.graph_client = graph_client
        self.account = Account.from_key(private_key) if private_key else None
        self.client = httpx.Client(timeout=timeout, transport=transport)
        self._token: Optional[str] = None
        self._token_lock = threading.Lock()

    @property
    def graphql_endpoint(self) -> str:
        return f"{self.server_address}/graphql"

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.server_address}{path}"
        try:
            response = self.client.post(url, json=data, headers={"Content-Type": "application/json"})
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[ProfileServer] POST %s failed: %s", path, e)
            raise TransportError(str(e), gateway=f"profile:{path}") from e
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected response from {path}", gateway=f"profile:{path}")
        return body

    def get_bearer_token(self) -> Optional[str]:
        """Run the challenge/response handshake once and reuse the token."""
        if self.account is None:
            return None
        with self._token_lock:
            if self._token is not None:
                return self._token

            challenge = self._post("/auth/challenge", {"address": self.account.address}).get("challenge")
            if not challenge:
                raise TransportError("No challenge returned", gateway="profile:/auth/challenge")

            signed = Account.sign_message(encode_defunct(text=challenge), private_key=self.account.key)
            signature = signed.signature.hex()
            if not signature.startswith("0x"):
                signature = f"0x{signature}"

            token = self._post("/auth/token", {"challenge": challenge, "signature": signature}).get("token")
            if not token:
                raise TransportError("No token returned", gateway="profile:/auth/token")
            logger.info("[ProfileServer] Authenticated as %s", self.account.address)
            self._token = token
            return self._token

    def _query(self, document: str, variables: Dict[str, Any], label: str) -> Dict[str, Any]:
        token = self.get_bearer_token()
        headers = {"Authorization": f"Bearer {token}"} if token else None
        body = self.graph_client.query(document, variables, endpoint=self.graphql_endpoint, headers=headers)
        if body is None:
            raise TransportError(f"{label} query failed", gateway="profile:graphql")
        return body.get("data") or {}

    def get_user(self, address: str) -> Optional[Dict[str, Any]]:
        """Return the server's user record, or None if it doesn't know the address."""
        return self._query(GET_USER, {"address": address}, "GetUser").get("user")

    def get_colony_subscribers(self, colony_address: str) -> List[Dict[str, Any]]:
        data = self._query(GET_COLONY_MEMBERS, {"address": colony_address}, "GetColonyMembers")
        return list(data.get("subscribedUsers") or [])

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
