"""
Cached resolvers for tokens, metadata blobs and user profiles.

Each resolver checks its cache namespace first and only goes to the remote
gateway on a miss. Entries are written once and never refreshed.
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError

from colony_indexer.data_models.schemas import NATIVE_TOKEN, Token, UserProfile
from colony_indexer.exceptions import TransportError, UserNotFoundError
from colony_indexer.services.blob_client import BlobClient
from colony_indexer.services.cache_store import CacheStore
from colony_indexer.services.chain_client import ChainClient
from colony_indexer.services.profile_client import ProfileServerClient
from colony_indexer.utils.addresses import is_zero_address, to_checksum
from colony_indexer.utils.logger import logger


class TokenResolver:
    def __init__(self, chain: ChainClient, store: CacheStore):
        self.chain = chain
        self.store = store

    def resolve(self, address: Optional[str]) -> Optional[Token]:
        """Token details for an address, or None if they can't be determined."""
        if not address:
            return None
        checksummed = to_checksum(address)
        if checksummed is None:
            logger.warning("[TokenResolver] Skipping invalid token address %s", address)
            return None
        address = checksummed

        cached = self.store.get(address)
        if cached is not None:
            try:
                return Token.model_validate(cached)
            except ValidationError:
                logger.warning("[TokenResolver] Ignoring malformed cache entry for %s", address)

        if is_zero_address(address):
            # native chain currency, never fetched
            token = NATIVE_TOKEN
        else:
            try:
                name, symbol, decimals = self.chain.get_token_details(address)
            except TransportError as e:
                logger.warning("[TokenResolver] Could not load token %s: %s", address, e)
                return None
            token = Token(address=address, name=name, symbol=symbol, decimals=decimals)

        if self.store.put(address, token.model_dump()):
            logger.debug("[TokenResolver] Cached token %s (%s)", address, token.symbol)
        return token


class BlobResolver:
    def __init__(self, blob_client: BlobClient, store: CacheStore):
        self.blob_client = blob_client
        self.store = store

    def resolve(self, content_hash: Optional[str]) -> Optional[Dict[str, Any]]:
        """Decoded JSON for a content hash. Failed fetches are not cached."""
        if not content_hash:
            return None
        cached = self.store.get(content_hash)
        if cached is not None:
            return cached

        data = self.blob_client.resolve(content_hash)
        if data is None:
            return None
        self.store.put(content_hash, data)
        return data


class UserResolver:
    """
    Profile lookups backed by the ``users`` cache.

    A fresh fetch also warms the blob and token caches with the user's
    avatar and watched tokens.
    """

    def __init__(
        self,
        profile_client: ProfileServerClient,
        store: CacheStore,
        token_resolver: TokenResolver,
        blob_resolver: BlobResolver,
    ):
        self.profile_client = profile_client
        self.store = store
        self.token_resolver = token_resolver
        self.blob_resolver = blob_resolver

    def resolve(self, address: str) -> UserProfile:
        """
        Raises:
            UserNotFoundError: If the profile server has no such user
            TransportError: If the profile server can't be reached
        """
        address = to_checksum(address) or address
        cached = self.store.get(address)
        if cached is not None:
            try:
                return UserProfile.model_validate(cached)
            except ValidationError:
                logger.warning("[UserResolver] Ignoring malformed cache entry for %s", address)

        user = self.profile_client.get_user(address)
        if not user:
            raise UserNotFoundError(address)
        return self.remember(address, user)

    def remember(self, address: str, user: Dict[str, Any]) -> UserProfile:
        """Cache a user record the server already handed us and warm its avatar and tokens."""
        address = to_checksum(address) or address
        profile = UserProfile.from_server(address, user)
        if not self.store.put(address, profile.model_dump()):
            logger.debug("[UserResolver] %s already cached", address)

        if profile.avatar_hash:
            self.blob_resolver.resolve(profile.avatar_hash)
        for token_address in profile.token_addresses:
            self.token_resolver.resolve(token_address)
        return profile
