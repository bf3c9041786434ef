"""Key/value stores used to remember small pieces of state across restarts."""

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

KV_KEY_PREFIX = "chargeledger:kv"


class KeyValueStore(Protocol):
    """Protocol for a JSON key/value store scoped to one run."""

    async def get_value(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set_value(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, overwriting any previous one."""
        ...

    async def set_value_if_absent(self, key: str, value: Any) -> bool:
        """Atomically store ``value`` unless the key exists.

        Returns:
            True if the value was stored, False if the key already existed
        """
        ...


class InMemoryKeyValueStore:
    """Key/value store kept in a dict (tests and throwaway local runs)."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get_value(self, key: str) -> Any | None:
        raw = self.values.get(key)
        return json.loads(raw) if raw is not None else None

    async def set_value(self, key: str, value: Any) -> None:
        self.values[key] = json.dumps(value)

    async def set_value_if_absent(self, key: str, value: Any) -> bool:
        if key in self.values:
            return False
        self.values[key] = json.dumps(value)
        return True


class FileSystemKeyValueStore:
    """Key/value store writing one ``<key>.json`` file per key.

    Survives process restarts on the same machine, which is what local runs
    need to keep appending to the same metadata dataset.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get_value(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    async def set_value(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(value, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    async def set_value_if_absent(self, key: str, value: Any) -> bool:
        try:
            with self._path(key).open("x", encoding="utf-8") as fh:
                fh.write(json.dumps(value, indent=2))
        except FileExistsError:
            return False
        return True


class RedisKeyValueStore:
    """Key/value store backed by Redis, namespaced per run."""

    def __init__(self, redis: Redis, namespace: str) -> None:
        """Initialize store.

        Args:
            redis: Redis async client
            namespace: Usually the run id; keys from different runs never collide
        """
        self.redis = redis
        self.namespace = namespace

    def build_key(self, key: str) -> str:
        """Build Redis key: "chargeledger:kv:{namespace}:{key}"."""
        return f"{KV_KEY_PREFIX}:{self.namespace}:{key}"

    async def get_value(self, key: str) -> Any | None:
        raw = await self.redis.get(self.build_key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return json.loads(raw)

    async def set_value(self, key: str, value: Any) -> None:
        await self.redis.set(self.build_key(key), json.dumps(value))

    async def set_value_if_absent(self, key: str, value: Any) -> bool:
        stored = await self.redis.set(self.build_key(key), json.dumps(value), nx=True)
        if not stored:
            logger.debug(f"Key {key!r} already set in namespace {self.namespace}")
        return bool(stored)
