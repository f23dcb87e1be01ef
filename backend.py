import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

import redis

from constants import REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, REGISTRY_BACKEND, ROOM_TTL_SECONDS
from logging_config import get_logger
from redis_keys import REDIS_USERS_KEY, REDIS_USERS_PATTERN, room_id_from_users_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class Room:
    room_id: str
    members: FrozenSet[str] = field(default_factory=frozenset)


class MemoryRoomRegistry:
    """Room membership kept in this process.

    Every operation runs under one lock, so a removal and the deletion of the
    room it empties happen as a single step for concurrent callers.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()
        logger.info("Initializing in-memory room registry")

    def _ensure(self, room_id: str) -> Set[str]:
        members = self._rooms.get(room_id)
        if members is None:
            members = self._rooms[room_id] = set()
            logger.debug(f"Created room {room_id}")
        return members

    def ensure(self, room_id: str) -> Room:
        with self._lock:
            return Room(room_id, frozenset(self._ensure(room_id)))

    def add_member(self, room_id: str, name: str) -> bool:
        with self._lock:
            members = self._ensure(room_id)
            if name in members:
                logger.debug(f"{name} already a member of room {room_id}")
                return False
            members.add(name)
            logger.debug(f"Added {name} to room {room_id} ({len(members)} members)")
            return True

    def remove_member(self, room_id: str, name: str) -> bool:
        with self._lock:
            members = self._rooms.get(room_id)
            if members is None or name not in members:
                return False
            members.discard(name)
            logger.debug(f"Removed {name} from room {room_id} ({len(members)} members)")
            if not members:
                del self._rooms[room_id]
                logger.info(f"Room {room_id} is empty, deleted")
            return True

    def members(self, room_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._rooms.get(room_id, ()))

    def rooms(self) -> List[Room]:
        with self._lock:
            # rooms created by a bare `ensure` stay hidden until someone joins
            return [Room(room_id, frozenset(members)) for room_id, members in self._rooms.items() if members]


class RedisRoomRegistry:
    """Room membership stored as one Redis set per room.

    SADD and SREM are single commands, and Redis deletes a set key when its
    last member goes, so no extra locking is needed. Redis cannot hold an
    empty set: `ensure` only reports what is there.

    Each join refreshes the room key's TTL, and `reset` clears every room at
    startup, so names held by a process that died without disconnecting do
    not stay taken.
    """

    def __init__(self, redis_client: redis.Redis, ttl: int = ROOM_TTL_SECONDS):
        self.redis_client = redis_client
        self.ttl = ttl
        logger.info("Initializing Redis room registry")

    def ensure(self, room_id: str) -> Room:
        return Room(room_id, self.members(room_id))

    def add_member(self, room_id: str, name: str) -> bool:
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        added = self.redis_client.sadd(users_key, name)
        if self.ttl:
            self.redis_client.expire(users_key, self.ttl)
        if added:
            logger.debug(f"Added {name} to room {room_id}")
        else:
            logger.debug(f"{name} already a member of room {room_id}")
        return bool(added)

    def remove_member(self, room_id: str, name: str) -> bool:
        removed = self.redis_client.srem(REDIS_USERS_KEY.format(slug=room_id), name)
        logger.debug(f"Removed {name} from room {room_id}: user_set={removed}")
        return bool(removed)

    def members(self, room_id: str) -> FrozenSet[str]:
        return frozenset(self.redis_client.smembers(REDIS_USERS_KEY.format(slug=room_id)))

    def rooms(self) -> List[Room]:
        result = []
        for key in self.redis_client.scan_iter(match=REDIS_USERS_PATTERN):
            room_id = room_id_from_users_key(key)
            members = self.members(room_id)
            # the key can vanish between SCAN and SMEMBERS
            if members:
                result.append(Room(room_id, members))
        return result

    def reset(self) -> int:
        """Drop every room set. Connections from earlier runs are gone, so their names are too."""
        keys = list(self.redis_client.scan_iter(match=REDIS_USERS_PATTERN))
        if keys:
            self.redis_client.delete(*keys)
        logger.info(f"Cleared {len(keys)} stale rooms from Redis")
        return len(keys)


def create_redis_client(host: str = REDIS_HOST, port: int = REDIS_PORT, password: Optional[str] = REDIS_PASSWORD, db: int = REDIS_DB) -> redis.Redis:
    try:
        client = redis.Redis(host=host, port=port, password=password, db=db, decode_responses=True)
        client.ping()
        logger.info(f"Redis client connected successfully to {host}:{port}")
        return client
    except redis.RedisError as e:
        logger.error(f"Failed to connect to Redis at {host}:{port}: {e}", exc_info=True)
        raise


def build_registry(backend: str = REGISTRY_BACKEND):
    if backend == "memory":
        return MemoryRoomRegistry()
    if backend == "redis":
        registry = RedisRoomRegistry(create_redis_client())
        registry.reset()
        return registry
    raise ValueError(f"Unknown registry backend: {backend!r}")
