"""
Session persistence on a key-value store.

KVStore is the storage contract the session core needs; RedisKVStore
implements it on redis.asyncio. SessionStore sits on top and owns key
naming, (de)serialization, TTL and the per-user secondary index:

    <session_key_prefix><session id>   -> {"userId", "createdAt", "metadata"}
    <session_index_prefix><user id>    -> set of session ids
"""
import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Optional, Set

import redis.asyncio as aioredis

from app.services.auth_schemas import SessionRecord

logger = logging.getLogger(__name__)


class KVBatch(ABC):
    """Writes queued on a batch are applied together by execute()."""

    @abstractmethod
    def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def delete(self, *keys: str) -> None:
        pass

    @abstractmethod
    def add_to_set(self, key: str, member: str) -> None:
        pass

    @abstractmethod
    def remove_from_set(self, key: str, *members: str) -> None:
        pass

    @abstractmethod
    def expire(self, key: str, ttl: int) -> None:
        pass

    @abstractmethod
    async def execute(self) -> None:
        pass


class KVStore(ABC):
    """Abstract key-value store holding opaque session blobs."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def get_many(self, keys: list[str]) -> list[Optional[bytes]]:
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        pass

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """Full keyspace scan for keys matching a glob pattern."""
        pass

    @abstractmethod
    async def add_to_set(self, key: str, member: str) -> None:
        pass

    @abstractmethod
    async def remove_from_set(self, key: str, *members: str) -> None:
        pass

    @abstractmethod
    async def set_members(self, key: str) -> Set[str]:
        pass

    @abstractmethod
    def atomic(self) -> KVBatch:
        """Start a batch of writes applied all-or-nothing."""
        pass


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisBatch(KVBatch):
    """MULTI/EXEC transaction on a redis pipeline."""

    def __init__(self, client: aioredis.Redis):
        self._pipe = client.pipeline(transaction=True)

    def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        self._pipe.set(key, value, ex=ttl)

    def delete(self, *keys: str) -> None:
        self._pipe.delete(*keys)

    def add_to_set(self, key: str, member: str) -> None:
        self._pipe.sadd(key, member)

    def remove_from_set(self, key: str, *members: str) -> None:
        self._pipe.srem(key, *members)

    def expire(self, key: str, ttl: int) -> None:
        self._pipe.expire(key, ttl)

    async def execute(self) -> None:
        async with self._pipe as pipe:
            await pipe.execute()


class RedisKVStore(KVStore):
    """KVStore backed by Redis (or any server speaking its protocol)."""

    def __init__(self, client: aioredis.Redis):
        self.redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKVStore":
        return cls(aioredis.from_url(url))

    async def get(self, key: str) -> Optional[bytes]:
        return await self.redis.get(key)

    async def get_many(self, keys: list[str]) -> list[Optional[bytes]]:
        if not keys:
            return []
        return await self.redis.mget(keys)

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        await self.redis.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.redis.delete(*keys)

    async def keys(self, pattern: str) -> list[str]:
        # SCAN rather than KEYS so the server is not blocked on large keyspaces
        return [_decode(key) async for key in self.redis.scan_iter(match=pattern)]

    async def add_to_set(self, key: str, member: str) -> None:
        await self.redis.sadd(key, member)

    async def remove_from_set(self, key: str, *members: str) -> None:
        if members:
            await self.redis.srem(key, *members)

    async def set_members(self, key: str) -> Set[str]:
        return {_decode(member) for member in await self.redis.smembers(key)}

    def atomic(self) -> RedisBatch:
        return RedisBatch(self.redis)

    async def close(self) -> None:
        await self.redis.aclose()


class SessionStore:
    """
    Session records on a KVStore.

    Sole owner of the key layout and the serialized form. Records expire
    passively through the store's TTL; index entries pointing at expired
    records are pruned when the index is read.
    """

    def __init__(
        self,
        kv: KVStore,
        key_prefix: str = "sessions:",
        index_prefix: str = "user-sessions:",
        ttl: Optional[int] = None,
    ):
        self.kv = kv
        self.key_prefix = key_prefix
        self.index_prefix = index_prefix
        self.ttl = ttl

    def new_id(self) -> str:
        """Generate a cryptographically secure session id."""
        return secrets.token_urlsafe(32)

    def key_for(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def index_key_for(self, user_id: str) -> str:
        return f"{self.index_prefix}{user_id}"

    def id_from_key(self, key: str) -> str:
        return key[len(self.key_prefix):] if key.startswith(self.key_prefix) else key

    def serialize(self, record: SessionRecord) -> bytes:
        return record.model_dump_json(by_alias=True).encode("utf-8")

    def deserialize(self, session_id: str, raw: bytes) -> SessionRecord:
        data = json.loads(raw)
        data["id"] = session_id
        return SessionRecord.model_validate(data)

    def _parse(self, session_id: str, raw: Optional[bytes]) -> Optional[SessionRecord]:
        if raw is None:
            return None
        try:
            return self.deserialize(session_id, raw)
        except ValueError:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            logger.warning("Discarding unreadable session record %s", session_id)
            return None

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        raw = await self.kv.get(self.key_for(session_id))
        return self._parse(session_id, raw)

    async def save(self, record: SessionRecord) -> None:
        """Write the record and its index entry in one transaction."""
        batch = self.kv.atomic()
        batch.set(self.key_for(record.id), self.serialize(record), ttl=self.ttl)
        if record.user_id is not None:
            index_key = self.index_key_for(record.user_id)
            batch.add_to_set(index_key, record.id)
            if self.ttl is not None:
                # Expires together with the newest record it lists
                batch.expire(index_key, self.ttl)
        await batch.execute()

    async def destroy(self, session_id: str, user_id: Optional[str] = None) -> None:
        """Delete the record and, when the owner is known, its index entry."""
        batch = self.kv.atomic()
        batch.delete(self.key_for(session_id))
        if user_id is not None:
            batch.remove_from_set(self.index_key_for(user_id), session_id)
        await batch.execute()

    async def load_for_user(self, user_id: str) -> list[SessionRecord]:
        """Records listed in the user's index, in no particular order."""
        index_key = self.index_key_for(user_id)
        session_ids = sorted(await self.kv.set_members(index_key))
        if not session_ids:
            return []

        raws = await self.kv.get_many([self.key_for(sid) for sid in session_ids])

        records = []
        stale = []
        for session_id, raw in zip(session_ids, raws):
            record = self._parse(session_id, raw)
            if record is None:
                stale.append(session_id)
            else:
                records.append(record)

        if stale:
            logger.debug("Pruning %d expired session ids for user %s", len(stale), user_id)
            await self.kv.remove_from_set(index_key, *stale)

        return records

    async def scan(self) -> list[SessionRecord]:
        """Every readable record in the store (full keyspace scan)."""
        keys = await self.kv.keys(f"{self.key_prefix}*")
        if not keys:
            return []
        raws = await self.kv.get_many(keys)
        records = []
        for key, raw in zip(keys, raws):
            record = self._parse(self.id_from_key(key), raw)
            if record is not None:
                records.append(record)
        return records

    async def rebuild_index(self) -> int:
        """
        Repopulate the per-user index from a full scan of session records.

        Needed for stores written before the index existed. Returns the
        number of authenticated sessions indexed.
        """
        records = await self.scan()

        batch = self.kv.atomic()
        user_ids = {r.user_id for r in records if r.user_id is not None}
        for user_id in user_ids:
            batch.delete(self.index_key_for(user_id))
        count = 0
        for record in records:
            if record.user_id is not None:
                batch.add_to_set(self.index_key_for(record.user_id), record.id)
                count += 1
        if self.ttl is not None:
            for user_id in user_ids:
                batch.expire(self.index_key_for(user_id), self.ttl)
        await batch.execute()

        logger.info("Rebuilt session index: %d sessions across store", count)
        return count
