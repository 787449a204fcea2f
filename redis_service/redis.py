from datetime import datetime
from enum import Enum
from contextlib import contextmanager
from typing import Optional, Any, Iterator, Type, TypeVar, cast
import json
import logging
from dataclasses import dataclass
from pydantic import BaseModel, ValidationError
import redis

from .exceptions import RedisServiceError

logger = logging.getLogger("redis_service")


class CustomEncoder(json.JSONEncoder):
    """Custom JSON encoder that can handle Enum, datetime and set objects."""

    def default(self, o: Any) -> Any:
        if isinstance(o, Enum):
            return o.name.lower()
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


T = TypeVar("T", bound=BaseModel)

client_not_initialized_msg = "Redis client not initialized."


@dataclass
class RedisServiceConfig:
    redis_host: str
    redis_port: int
    redis_db: int = 0
    redis_password: Optional[str] = None


class RedisService:
    def __init__(self, config: RedisServiceConfig):
        self.config = config
        self._client: Optional[redis.Redis] = None
        self.connect()

    def connect(self) -> None:
        try:
            self._client = redis.Redis(
                host=self.config.redis_host,
                port=self.config.redis_port,
                db=self.config.redis_db,
                password=self.config.redis_password,
                decode_responses=True,
            )
            logger.info(
                "Redis client initialized.",
                extra={
                    "host": self.config.redis_host,
                    "port": self.config.redis_port,
                    "db": self.config.redis_db,
                },
            )
        except redis.ConnectionError:
            logger.exception("Failed to initialize Redis client.")
            self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            logger.error(client_not_initialized_msg)
            raise RedisServiceError(client_not_initialized_msg)
        return self._client

    def is_alive(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(self._client.ping())
        except redis.ConnectionError:
            logger.exception("Redis connection error during health check.")
            return False

    def _prepare_for_serialization(self, value: Any) -> Any:
        """Recursively process data structures, converting BaseModel instances
        to serializable dicts."""
        if isinstance(value, BaseModel):
            return value.model_dump()
        if isinstance(value, list):
            return [self._prepare_for_serialization(item) for item in value]
        if isinstance(value, dict):
            return {k: self._prepare_for_serialization(v) for k, v in value.items()}
        return value

    def _serialize(self, value: Any) -> Any:
        processed_value = self._prepare_for_serialization(value)
        if isinstance(processed_value, (dict, list)):
            return json.dumps(processed_value, cls=CustomEncoder)
        return processed_value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        try:
            return bool(self.client.set(key, self._serialize(value), ex=ttl_seconds))
        except (redis.RedisError, TypeError, ValueError) as exception:
            logger.exception("Error setting Redis key.", extra={"key": key})
            raise RedisServiceError(f"Failed to set key {key}") from exception

    def set_with_members(
        self, key: str, value: Any, members_key: str, members: list[str]
    ) -> None:
        """Write a value and replace a companion set in one MULTI/EXEC block."""
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.set(key, self._serialize(value))
            pipe.delete(members_key)
            if members:
                pipe.sadd(members_key, *members)
            pipe.execute()
        except (redis.RedisError, TypeError, ValueError) as exception:
            logger.exception(
                "Error setting Redis key with members.",
                extra={"key": key, "members_key": members_key},
            )
            raise RedisServiceError(f"Failed to set key {key}") from exception

    def get(self, key: str, model: Type[T]) -> T | None:
        try:
            value = self.client.get(key)
        except redis.RedisError as exception:
            logger.exception("Error getting Redis key.", extra={"key": key})
            raise RedisServiceError(f"Failed to get key {key}") from exception

        if value is None:
            return None

        try:
            return model.model_validate(json.loads(str(value)))
        except json.JSONDecodeError:
            logger.exception("JSON Decode error.", extra={"key": key})
            return None
        except ValidationError:
            logger.exception(
                "Validation error.", extra={"key": key, "model": model.__name__}
            )
            return None

    # quoted: `set` in this class body is the method above
    def smembers(self, key: str) -> "set[str]":
        try:
            return cast(set[str], self.client.smembers(key))
        except redis.RedisError as exception:
            logger.exception("Error reading Redis set.", extra={"key": key})
            raise RedisServiceError(f"Failed to read set {key}") from exception

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(cast(int, self.client.delete(*keys)))
        except redis.RedisError as exception:
            logger.exception("Error deleting Redis keys.", extra={"keys": keys})
            raise RedisServiceError("Failed to delete keys") from exception

    def list_keys(self, pattern: str) -> list[str]:
        try:
            return [str(key) for key in self.client.scan_iter(match=pattern)]
        except redis.RedisError as exception:
            logger.exception("Error listing Redis keys.", extra={"pattern": pattern})
            raise RedisServiceError(f"Failed to list keys {pattern}") from exception

    def sadd(self, key: str, *members: str) -> int:
        try:
            return int(cast(int, self.client.sadd(key, *members)))
        except redis.RedisError as exception:
            logger.exception("Error adding to Redis set.", extra={"key": key})
            raise RedisServiceError(f"Failed to add to set {key}") from exception

    def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        try:
            return int(cast(int, self.client.srem(key, *members)))
        except redis.RedisError as exception:
            logger.exception("Error removing from Redis set.", extra={"key": key})
            raise RedisServiceError(f"Failed to remove from set {key}") from exception

    @contextmanager
    def lock(
        self, key: str, timeout: float, blocking_timeout: float | None = None
    ) -> Iterator[None]:
        """Hold a Redis lock shared by every process using this server."""
        try:
            redis_lock = self.client.lock(
                key, timeout=timeout, blocking_timeout=blocking_timeout
            )
            acquired = redis_lock.acquire()
        except redis.RedisError as exception:
            logger.exception("Error acquiring Redis lock.", extra={"key": key})
            raise RedisServiceError(f"Failed to acquire lock {key}") from exception
        if not acquired:
            raise RedisServiceError(f"Timed out waiting for lock {key}")
        try:
            yield
        finally:
            try:
                redis_lock.release()
            except redis.exceptions.LockError:
                logger.warning("Redis lock expired before release.", extra={"key": key})
