"""
User/session persistence for the relay.

The relay only needs three operations: look a user up by normalized phone number,
create a user, and update a user's name or session list. Two backends implement
them: an in-memory map used for development and tests, and a Redis backend storing
each user as a JSON document under "user:<phone>". The backend is chosen once at
startup and injected into the relay.
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

import redis.asyncio as redis

from voice_agent.config.constants import LOGGER_NAME
from voice_agent.config.settings import RelayConfig
from voice_agent.errors import UserExistsError, UserNotFoundError
from voice_agent.models.records import SessionRecord, UserRecord

logger = logging.getLogger(LOGGER_NAME)


class UserStore(ABC):
    """Key-value store of UserRecords keyed by normalized phone number."""

    @abstractmethod
    async def get_user_by_phone(self, phone_number: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def create_user(
        self, phone_number: str, full_name: str, sessions: Optional[List[SessionRecord]] = None
    ) -> UserRecord:
        """Create a user; raises UserExistsError if the phone number is taken."""

    @abstractmethod
    async def update_user(
        self,
        phone_number: str,
        full_name: Optional[str] = None,
        sessions: Optional[List[SessionRecord]] = None,
    ) -> UserRecord:
        """
        Merge fields into an existing user; raises UserNotFoundError if unknown.

        The session list is replaced wholesale when given and preserved otherwise.
        """

    async def close(self) -> None:
        pass


def _merge(existing: UserRecord, full_name: Optional[str], sessions: Optional[List[SessionRecord]]) -> UserRecord:
    update = {}
    if full_name is not None:
        update["full_name"] = full_name
    if sessions is not None:
        update["sessions"] = list(sessions)
    return existing.model_copy(update=update)


class InMemoryUserStore(UserStore):
    """Process-local store backed by a dictionary."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    async def get_user_by_phone(self, phone_number: str) -> Optional[UserRecord]:
        return self.users.get(phone_number)

    async def create_user(
        self, phone_number: str, full_name: str, sessions: Optional[List[SessionRecord]] = None
    ) -> UserRecord:
        if phone_number in self.users:
            raise UserExistsError(f"User with phone number {phone_number} already exists.")
        record = UserRecord(phone_number=phone_number, full_name=full_name, sessions=list(sessions or []))
        self.users[phone_number] = record
        return record

    async def update_user(
        self,
        phone_number: str,
        full_name: Optional[str] = None,
        sessions: Optional[List[SessionRecord]] = None,
    ) -> UserRecord:
        existing = self.users.get(phone_number)
        if existing is None:
            raise UserNotFoundError(f"Cannot update missing user with phone number {phone_number}.")
        updated = _merge(existing, full_name, sessions)
        self.users[phone_number] = updated
        return updated


class RedisUserStore(UserStore):
    """Durable store keeping one JSON document per user in Redis."""

    DB_PREFIX = "user:"

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisUserStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _key(self, phone_number: str) -> str:
        return f"{self.DB_PREFIX}{phone_number}"

    async def get_user_by_phone(self, phone_number: str) -> Optional[UserRecord]:
        data = await self.client.get(self._key(phone_number))
        if not data:
            return None
        return UserRecord.model_validate_json(data)

    async def create_user(
        self, phone_number: str, full_name: str, sessions: Optional[List[SessionRecord]] = None
    ) -> UserRecord:
        record = UserRecord(phone_number=phone_number, full_name=full_name, sessions=list(sessions or []))
        created = await self.client.set(self._key(phone_number), record.model_dump_json(by_alias=True), nx=True)
        if not created:
            raise UserExistsError(f"User with phone number {phone_number} already exists.")
        logger.info(f"Created user: {phone_number}")
        return record

    async def update_user(
        self,
        phone_number: str,
        full_name: Optional[str] = None,
        sessions: Optional[List[SessionRecord]] = None,
    ) -> UserRecord:
        existing = await self.get_user_by_phone(phone_number)
        if existing is None:
            raise UserNotFoundError(f"Cannot update missing user with phone number {phone_number}.")
        updated = _merge(existing, full_name, sessions)
        await self.client.set(self._key(phone_number), updated.model_dump_json(by_alias=True))
        logger.debug(f"Updated user: {phone_number}")
        return updated

    async def close(self) -> None:
        await self.client.aclose()


class KeyedLock:
    """
    One asyncio.Lock per key, released from the registry once nobody holds it.

    Serializes read-modify-write cycles on a single user within this process.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]


def create_user_store(config: RelayConfig) -> UserStore:
    """Build the store backend named in the configuration."""
    if config.store_backend == "redis":
        logger.info("Using Redis user store")
        return RedisUserStore.from_url(config.redis_url)
    if config.store_backend != "memory":
        logger.warning(f"Unknown user store backend '{config.store_backend}', using memory")
    logger.info("Using in-memory user store")
    return InMemoryUserStore()
