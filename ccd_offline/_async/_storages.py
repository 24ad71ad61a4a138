from __future__ import annotations

import logging
import shutil
import time
import typing as tp
from pathlib import Path
from urllib.parse import quote, unquote

from anyio import to_thread
import httpx

try:
    import anysqlite
except ImportError:  # pragma: no cover
    anysqlite = None  # type: ignore

from .._files import AsyncFileManager
from .._headers import Vary
from .._serializers import BaseSerializer, JSONSerializer, StoredPair
from .._synchronization import AsyncLock
from .._utils import clone_request, clone_response, generate_key

logger = logging.getLogger("ccd_offline.storages")

__all__ = (
    "AsyncBaseStorage",
    "AsyncBaseCache",
    "AsyncInMemoryStorage",
    "AsyncFileStorage",
    "AsyncSQLiteStorage",
    "vary_headers_match",
)

# Bodies are stored decoded, so the encoding a request accepts never changes the entry.
IGNORED_VARY_HEADERS = frozenset({"accept-encoding"})


def vary_headers_match(request: httpx.Request, stored_request: httpx.Request, stored_response: httpx.Response) -> bool:
    """
    Checks that every request header named by the stored response's `Vary` header
    has the same value on the new request as on the one that produced the entry.
    """
    vary = Vary.from_value(stored_response.headers.get_list("vary"))

    if vary.matches_nothing:
        return False

    return all(
        request.headers.get_list(name) == stored_request.headers.get_list(name)
        for name in vary.values
        if name not in IGNORED_VARY_HEADERS
    )


class AsyncBaseCache:
    """
    One named generation of stored responses.

    Subclasses provide the raw key-level operations; lookups, the GET-only rule and
    copying of bodies live here.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    async def match(self, request: httpx.Request) -> tp.Optional[httpx.Response]:
        if request.method != "GET":
            return None

        stored = await self._retrieve(generate_key(request.method, request.url))
        if stored is None:
            return None

        stored_response, stored_request = stored
        if not vary_headers_match(request, stored_request, stored_response):
            logger.debug("Stored response for %s does not match the request's Vary headers", request.url)
            return None
        return clone_response(stored_response)

    async def put(self, request: httpx.Request, response: httpx.Response) -> None:
        if request.method != "GET":
            raise TypeError(f"Only GET requests can be stored, got `{request.method}`")

        # The caller keeps its own copy of the body.
        await response.aread()
        await self._store(
            generate_key(request.method, request.url),
            (clone_response(response), clone_request(request)),
        )

    async def delete(self, request: httpx.Request) -> bool:
        return await self._remove(generate_key(request.method, request.url))

    async def keys(self) -> tp.List[httpx.Request]:
        return [stored_request for _, stored_request in await self._list()]

    async def _retrieve(self, key: str) -> tp.Optional[StoredPair]:
        raise NotImplementedError()

    async def _store(self, key: str, stored: StoredPair) -> None:
        raise NotImplementedError()

    async def _remove(self, key: str) -> bool:
        raise NotImplementedError()

    async def _list(self) -> tp.List[StoredPair]:
        raise NotImplementedError()


class AsyncBaseStorage:
    """
    A collection of named caches, one per cache generation.
    """

    def __init__(self, serializer: tp.Optional[BaseSerializer] = None) -> None:
        self._serializer = serializer or JSONSerializer()

    async def open(self, cache_name: str) -> AsyncBaseCache:
        raise NotImplementedError()

    async def has(self, cache_name: str) -> bool:
        raise NotImplementedError()

    async def delete(self, cache_name: str) -> bool:
        raise NotImplementedError()

    async def keys(self) -> tp.List[str]:
        raise NotImplementedError()

    async def match(self, request: httpx.Request) -> tp.Optional[httpx.Response]:
        """
        Looks the request up in every cache, oldest first.
        """
        for cache_name in await self.keys():
            cache = await self.open(cache_name)
            response = await cache.match(request)
            if response is not None:
                return response
        return None

    async def aclose(self) -> None:
        raise NotImplementedError()


class _InMemoryCache(AsyncBaseCache):
    def __init__(self, name: str, entries: tp.Dict[str, StoredPair], lock: AsyncLock) -> None:
        super().__init__(name)
        self._entries = entries
        self._lock = lock

    async def _retrieve(self, key: str) -> tp.Optional[StoredPair]:
        async with self._lock:
            return self._entries.get(key)

    async def _store(self, key: str, stored: StoredPair) -> None:
        async with self._lock:
            self._entries[key] = stored

    async def _remove(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def _list(self) -> tp.List[StoredPair]:
        async with self._lock:
            return list(self._entries.values())


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    A simple in-memory storage.

    Entries live as long as the storage object. A cache object opened before its
    cache was deleted keeps working, but nothing written to it is visible through
    the storage any more.
    """

    def __init__(self) -> None:
        super().__init__()
        self._caches: tp.Dict[str, tp.Dict[str, StoredPair]] = {}
        self._lock = AsyncLock()

    async def open(self, cache_name: str) -> AsyncBaseCache:
        """
        Opens the cache, creating it if needed.

        :param cache_name: Name of the cache generation
        :type cache_name: str
        :return: The named cache
        :rtype: AsyncBaseCache
        """

        async with self._lock:
            entries = self._caches.setdefault(cache_name, {})
        return _InMemoryCache(cache_name, entries, self._lock)

    async def has(self, cache_name: str) -> bool:
        async with self._lock:
            return cache_name in self._caches

    async def delete(self, cache_name: str) -> bool:
        """
        Deletes the cache with all its entries.

        :param cache_name: Name of the cache generation
        :type cache_name: str
        :return: Whether the cache existed
        :rtype: bool
        """

        async with self._lock:
            return self._caches.pop(cache_name, None) is not None

    async def keys(self) -> tp.List[str]:
        async with self._lock:
            return list(self._caches)

    async def aclose(self) -> None:  # pragma: no cover
        return


class _FileCache(AsyncBaseCache):
    def __init__(self, name: str, storage: "AsyncFileStorage") -> None:
        super().__init__(name)
        self._storage = storage
        self._path = storage._cache_path(name)

    async def _retrieve(self, key: str) -> tp.Optional[StoredPair]:
        response_path = self._path / key
        async with self._storage._lock:
            if not response_path.is_file():
                return None
            read_data = await self._storage._file_manager.read_from(str(response_path))
        if len(read_data) == 0:
            return None
        return self._storage._serializer.loads(read_data)

    async def _store(self, key: str, stored: StoredPair) -> None:
        response, request = stored
        data = self._storage._serializer.dumps(response=response, request=request)
        async with self._storage._lock:
            if not self._path.is_dir():
                logger.debug("Cache %r was deleted, dropping the write of %s", self.name, request.url)
                return
            await self._storage._file_manager.write_to(str(self._path / key), data)

    async def _remove(self, key: str) -> bool:
        async with self._storage._lock:
            return await self._storage._file_manager.remove(str(self._path / key))

    async def _list(self) -> tp.List[StoredPair]:
        async with self._storage._lock:
            if not self._path.is_dir():
                return []
            paths = sorted(
                (entry for entry in self._path.iterdir() if entry.is_file() and not entry.name.endswith(".tmp")),
                key=lambda entry: entry.stat().st_mtime,
            )
            raw_entries = [await self._storage._file_manager.read_from(str(path)) for path in paths]
        return [self._storage._serializer.loads(raw) for raw in raw_entries if len(raw) != 0]


class AsyncFileStorage(AsyncBaseStorage):
    """
    A simple file storage.

    Every cache is a directory under `base_path`, every entry a file named after its key.

    :param serializer: Serializer capable of serializing and de-serializing http responses, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param base_path: A storage base path where the responses should be saved, defaults to None
    :type base_path: tp.Optional[Path], optional
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        base_path: tp.Optional[Path] = None,
    ) -> None:
        super().__init__(serializer)

        self._base_path = Path(base_path) if base_path is not None else Path(".cache/ccd-offline")
        self._gitignore_file = self._base_path / ".gitignore"

        self._base_path.mkdir(parents=True, exist_ok=True)

        if not self._gitignore_file.is_file():
            with open(self._gitignore_file, "w", encoding="utf-8") as f:
                f.write("# Automatically created by ccd-offline\n*")

        self._file_manager = AsyncFileManager(is_binary=self._serializer.is_binary)
        self._lock = AsyncLock()

    def _cache_path(self, cache_name: str) -> Path:
        return self._base_path / quote(cache_name, safe="")

    async def open(self, cache_name: str) -> AsyncBaseCache:
        async with self._lock:
            self._cache_path(cache_name).mkdir(exist_ok=True)
        return _FileCache(cache_name, self)

    async def has(self, cache_name: str) -> bool:
        async with self._lock:
            return self._cache_path(cache_name).is_dir()

    async def delete(self, cache_name: str) -> bool:
        cache_path = self._cache_path(cache_name)
        async with self._lock:
            if not cache_path.is_dir():
                return False
            await to_thread.run_sync(shutil.rmtree, cache_path)
        return True

    async def keys(self) -> tp.List[str]:
        """
        Lists cache names in alphabetical order.
        """
        async with self._lock:
            return sorted(unquote(entry.name) for entry in self._base_path.iterdir() if entry.is_dir())

    async def aclose(self) -> None:  # pragma: no cover
        return


class _SQLiteCache(AsyncBaseCache):
    def __init__(self, name: str, storage: "AsyncSQLiteStorage") -> None:
        super().__init__(name)
        self._storage = storage

    async def _retrieve(self, key: str) -> tp.Optional[StoredPair]:
        connection = await self._storage._setup()
        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT data FROM entries WHERE cache_name = ? AND key = ?", [self.name, key]
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._storage._serializer.loads(row[0])

    async def _store(self, key: str, stored: StoredPair) -> None:
        connection = await self._storage._setup()
        response, request = stored
        data = self._storage._serializer.dumps(response=response, request=request)

        async with self._storage._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [self.name])
            if await cursor.fetchone() is None:
                logger.debug("Cache %r was deleted, dropping the write of %s", self.name, request.url)
                return
            await connection.execute(
                "INSERT OR REPLACE INTO entries(cache_name, key, data, date_created) VALUES(?, ?, ?, ?)",
                [self.name, key, data, time.time()],
            )
            await connection.commit()

    async def _remove(self, key: str) -> bool:
        connection = await self._storage._setup()
        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT 1 FROM entries WHERE cache_name = ? AND key = ?", [self.name, key]
            )
            if await cursor.fetchone() is None:
                return False
            await connection.execute("DELETE FROM entries WHERE cache_name = ? AND key = ?", [self.name, key])
            await connection.commit()
        return True

    async def _list(self) -> tp.List[StoredPair]:
        connection = await self._storage._setup()
        async with self._storage._lock:
            cursor = await connection.execute(
                "SELECT data FROM entries WHERE cache_name = ? ORDER BY date_created", [self.name]
            )
            rows = await cursor.fetchall()
        return [self._storage._serializer.loads(row[0]) for row in rows]


class AsyncSQLiteStorage(AsyncBaseStorage):
    """
    A simple sqlite3 storage.

    :param serializer: Serializer capable of serializing and de-serializing http responses, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[anysqlite.Connection], optional
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        connection: tp.Optional[anysqlite.Connection] = None,
    ) -> None:
        if anysqlite is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `ccd-offline` installed with the `sqlite` extension as shown.\n"
                "```pip install ccd-offline[sqlite]```"
            )
        super().__init__(serializer)

        self._connection: tp.Optional[anysqlite.Connection] = connection or None
        self._setup_lock = AsyncLock()
        self._setup_completed: bool = False
        self._lock = AsyncLock()

    async def _setup(self) -> anysqlite.Connection:
        async with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = await anysqlite.connect(".ccd-offline.sqlite", check_same_thread=False)
                await self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS caches(name TEXT PRIMARY KEY, date_created REAL)"
                )
                await self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS entries("
                    "cache_name TEXT, key TEXT, data BLOB, date_created REAL, PRIMARY KEY(cache_name, key))"
                )
                await self._connection.commit()
                self._setup_completed = True
        assert self._connection
        return self._connection

    async def open(self, cache_name: str) -> AsyncBaseCache:
        connection = await self._setup()
        async with self._lock:
            await connection.execute(
                "INSERT OR IGNORE INTO caches(name, date_created) VALUES(?, ?)", [cache_name, time.time()]
            )
            await connection.commit()
        return _SQLiteCache(cache_name, self)

    async def has(self, cache_name: str) -> bool:
        connection = await self._setup()
        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [cache_name])
            return await cursor.fetchone() is not None

    async def delete(self, cache_name: str) -> bool:
        connection = await self._setup()
        async with self._lock:
            cursor = await connection.execute("SELECT 1 FROM caches WHERE name = ?", [cache_name])
            if await cursor.fetchone() is None:
                return False
            await connection.execute("DELETE FROM entries WHERE cache_name = ?", [cache_name])
            await connection.execute("DELETE FROM caches WHERE name = ?", [cache_name])
            await connection.commit()
        return True

    async def keys(self) -> tp.List[str]:
        connection = await self._setup()
        async with self._lock:
            cursor = await connection.execute("SELECT name FROM caches ORDER BY date_created, rowid")
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def aclose(self) -> None:  # pragma: no cover
        if self._connection is not None:
            await self._connection.close()
