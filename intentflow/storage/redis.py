"""
Redis Storage Adapter

Redis-backed conversation store. Each conversation is one JSON document with
a sliding TTL refreshed on every save, so idle conversations expire on their
own.

Key pattern:
- {prefix}:conversation:{conversation_id} -> JSON-encoded ConversationState

Uses redis.asyncio for async operations.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .ports import ConversationStateStore, StorageError
from intentflow.state.models import ConversationState

logger = logging.getLogger(__name__)


class RedisConversationStore(ConversationStateStore):
    """
    Redis-based conversation store with TTL support.

    The client may be created with or without `decode_responses`; both bytes
    and str payloads are accepted.
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "intentflow",
        ttl_seconds: int | None = 86400 * 7,  # 7 days default
        owns_client: bool = False,
    ) -> None:
        """
        Initialize Redis conversation store.

        Args:
            redis: Redis async client
            key_prefix: Prefix for all keys (multi-tenant isolation)
            ttl_seconds: Expiry applied on every save (None disables expiry)
            owns_client: Close the client in `close()`
        """
        self._redis = redis
        self._prefix = key_prefix
        self._ttl = ttl_seconds
        self._owns_client = owns_client

    def _key(self, conversation_id: str) -> str:
        return f"{self._prefix}:conversation:{conversation_id}"

    async def load(self, conversation_id: str) -> ConversationState | None:
        try:
            data = await self._redis.get(self._key(conversation_id))
        except RedisError as e:
            raise StorageError(f"Failed to load conversation {conversation_id}: {e}") from e

        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            return ConversationState.model_validate_json(data)
        except ValidationError as e:
            raise StorageError(f"Corrupt conversation record {conversation_id}: {e}") from e

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        payload = state.model_dump_json()
        try:
            await self._redis.set(self._key(conversation_id), payload, ex=self._ttl)
        except RedisError as e:
            raise StorageError(f"Failed to save conversation {conversation_id}: {e}") from e

    async def delete(self, conversation_id: str) -> bool:
        try:
            removed = await self._redis.delete(self._key(conversation_id))
        except RedisError as e:
            raise StorageError(f"Failed to delete conversation {conversation_id}: {e}") from e
        return bool(removed)

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()
            logger.info("Redis conversation store closed")
