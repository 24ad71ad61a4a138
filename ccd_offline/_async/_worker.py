from __future__ import annotations

import enum
import logging
import types
import typing as tp
from dataclasses import dataclass, field

import anyio
import anyio.abc
import httpx
from typing_extensions import assert_never

from .._classifier import classify
from .._config import WorkerConfig
from .._exceptions import InvalidStateError, PrecacheError
from ._storages import AsyncBaseStorage, AsyncInMemoryStorage
from ._strategies import AsyncStrategyExecutor, RequestSender

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

    from ._registration import AsyncWorkerRegistration

logger = logging.getLogger("ccd_offline.worker")

__all__ = (
    "AsyncOfflineWorker",
    "WorkerState",
    "InstallEvent",
    "ActivateEvent",
    "FetchEvent",
    "MessageEvent",
    "SyncEvent",
    "AnyEvent",
)

SyncHandler = tp.Callable[[], tp.Awaitable[None]]


class WorkerState(enum.Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


@dataclass
class InstallEvent: ...


@dataclass
class ActivateEvent: ...


@dataclass
class FetchEvent:
    request: httpx.Request


@dataclass
class MessageEvent:
    data: tp.Any = field(default=None)


@dataclass
class SyncEvent:
    tag: str


AnyEvent = tp.Union[InstallEvent, ActivateEvent, FetchEvent, MessageEvent, SyncEvent]


class AsyncOfflineWorker:
    """
    Offline cache worker.

    Pre-caches the application shell on install, drops older cache generations on
    activation and answers fetches with a caching strategy picked per request.

    Cache writes that follow a fetch run in the background while the worker is used
    as an async context manager; leaving the context waits for them. Outside of the
    context they are awaited before the response is returned.

    :param request_sender: Callable that sends a request over the network
    :type request_sender: RequestSender
    :param storage: Storage for the cache generations, defaults to AsyncInMemoryStorage
    :type storage: tp.Optional[AsyncBaseStorage], optional
    :param config: Worker settings, defaults to WorkerConfig()
    :type config: tp.Optional[WorkerConfig], optional
    """

    def __init__(
        self,
        request_sender: RequestSender,
        storage: tp.Optional[AsyncBaseStorage] = None,
        config: tp.Optional[WorkerConfig] = None,
    ) -> None:
        self.storage = storage if storage is not None else AsyncInMemoryStorage()

        if not isinstance(self.storage, AsyncBaseStorage):  # pragma: no cover
            raise TypeError(f"Expected subclass of `AsyncBaseStorage` but got `{storage.__class__.__name__}`")

        self.config = config if config is not None else WorkerConfig()
        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self.clients_claimed = False

        self._send = request_sender
        self._registration: tp.Optional[AsyncWorkerRegistration] = None
        self._sync_handlers: tp.Dict[str, SyncHandler] = {}
        self._task_group: tp.Optional[anyio.abc.TaskGroup] = None
        self._strategies = AsyncStrategyExecutor(
            request_sender=self._send,
            storage=self.storage,
            cache_name=self.config.cache_name,
            background=self._run_in_background,
        )

    async def handle(self, event: AnyEvent) -> tp.Any:
        if isinstance(event, InstallEvent):
            return await self.handle_install()
        elif isinstance(event, ActivateEvent):
            return await self.handle_activate()
        elif isinstance(event, FetchEvent):
            return await self.handle_fetch(event.request)
        elif isinstance(event, MessageEvent):
            return await self.handle_message(event.data)
        elif isinstance(event, SyncEvent):
            return await self.handle_sync(event.tag)
        else:
            assert_never(event)

    async def handle_install(self) -> None:
        """
        Fetches every pre-cache asset and stores them in the live cache.

        Nothing is stored unless every asset was fetched with a 2xx status and a readable body.

        :raises PrecacheError: When an asset could not be fetched; the worker becomes redundant.
            The worker also becomes redundant when anything else interrupts the install
        """

        self._ensure_state(WorkerState.PARSED)
        self.state = WorkerState.INSTALLING
        logger.info(
            "Installing, caching %d critical assets into %r", len(self.config.precache_assets), self.config.cache_name
        )

        fetched: tp.List[tp.Tuple[httpx.Request, httpx.Response]] = []
        try:
            for url in self.config.precache_assets:
                fetched.append(await self._fetch_for_cache(url))

            cache = await self.storage.open(self.config.cache_name)
            for request, response in fetched:
                await cache.put(request, response)
        except BaseException:
            self.state = WorkerState.REDUNDANT
            raise

        self.state = WorkerState.INSTALLED
        logger.info("Installed %r", self.config.cache_name)

        if self.config.skip_waiting_on_install:
            await self.skip_waiting()

    async def handle_activate(self) -> tp.List[str]:
        """
        Deletes every cache generation but the live one and takes control of the clients.

        :return: Names of the deleted caches
        :rtype: tp.List[str]
        """

        self._ensure_state(WorkerState.INSTALLED)
        self.state = WorkerState.ACTIVATING
        logger.info("Activating %r", self.config.cache_name)

        deleted = []
        for cache_name in await self.storage.keys():
            if cache_name != self.config.cache_name:
                logger.info("Deleting old cache: %s", cache_name)
                await self.storage.delete(cache_name)
                deleted.append(cache_name)

        self.state = WorkerState.ACTIVATED
        self.claim_clients()
        logger.info("Activated %r", self.config.cache_name)
        return deleted

    async def handle_fetch(self, request: httpx.Request) -> tp.Optional[httpx.Response]:
        """
        Answers a request, or returns `None` if the worker does not intercept it.
        """

        self._ensure_state(WorkerState.ACTIVATED)
        request_class = classify(request, self.config)
        logger.debug("%s %s handled as %s", request.method, request.url, request_class.value)
        return await self._strategies.execute(request_class, request)

    async def handle_message(self, data: tp.Any) -> tp.Optional[tp.List[str]]:
        """
        Handles a message posted by the application.

        * ``{"type": "SKIP_WAITING"}`` activates a waiting worker right away.
        * ``{"type": "CACHE_URLS", "urls": [...]}`` stores the URLs in the live cache and
          returns the ones that were stored.

        Anything else is ignored.
        """

        if not isinstance(data, tp.Mapping):
            logger.debug("Ignoring message that is not a mapping: %r", data)
            return None

        message_type = data.get("type")

        if message_type == "SKIP_WAITING":
            await self.skip_waiting()
            return None

        if message_type == "CACHE_URLS":
            urls = data.get("urls")
            if not isinstance(urls, (list, tuple)) or not all(isinstance(url, str) for url in urls):
                logger.debug("Ignoring CACHE_URLS message without a list of URLs: %r", urls)
                return None
            return await self.precache_urls(urls)

        logger.debug("Ignoring message of unknown type %r", message_type)
        return None

    async def handle_sync(self, tag: str) -> None:
        handler = self._sync_handlers.get(tag)
        if handler is None:
            logger.debug("No handler registered for sync tag %r", tag)
            return
        logger.info("Running sync %r", tag)
        await handler()

    def register_sync(self, tag: str, handler: SyncHandler) -> None:
        self._sync_handlers[tag] = handler

    async def precache_urls(self, urls: tp.Sequence[str]) -> tp.List[str]:
        """
        Stores each URL in the live cache. A URL that fails is logged and skipped.

        :param urls: Absolute URLs or paths relative to the worker origin
        :type urls: tp.Sequence[str]
        :return: The URLs that were stored
        :rtype: tp.List[str]
        """

        cache = await self.storage.open(self.config.cache_name)
        stored = []
        for url in urls:
            try:
                request, response = await self._fetch_for_cache(url)
            except PrecacheError as exc:
                logger.warning("Skipping %s: %s", url, exc)
                continue
            await cache.put(request, response)
            stored.append(url)
        return stored

    async def skip_waiting(self) -> None:
        self.skip_waiting_requested = True
        if self._registration is not None and self._registration.waiting is self:
            await self._registration.promote_waiting()

    def claim_clients(self) -> None:
        self.clients_claimed = True
        if self._registration is not None:
            self._registration.claimed_by(self)

    def become_redundant(self) -> None:
        logger.info("Worker for %r is now redundant", self.config.cache_name)
        self.state = WorkerState.REDUNDANT

    def attach(self, registration: AsyncWorkerRegistration) -> None:
        self._registration = registration

    async def _fetch_for_cache(self, url: str) -> tp.Tuple[httpx.Request, httpx.Response]:
        request = httpx.Request("GET", self.config.resolve(url))
        try:
            response = await self._send(request)
        except httpx.RequestError as exc:
            raise PrecacheError(f"Could not fetch {request.url}: {exc}", url=str(request.url)) from exc

        if not response.is_success:
            await response.aclose()
            raise PrecacheError(f"Fetching {request.url} returned {response.status_code}", url=str(request.url))

        try:
            await response.aread()
        except httpx.RequestError as exc:
            raise PrecacheError(f"Could not read {request.url}: {exc}", url=str(request.url)) from exc
        return request, response

    async def _run_in_background(self, func: tp.Callable[..., tp.Awaitable[None]], *args: tp.Any) -> None:
        if self._task_group is None:
            await func(*args)
            return
        self._task_group.start_soon(func, *args)

    def _ensure_state(self, expected: WorkerState) -> None:
        if self.state is not expected:
            raise InvalidStateError(f"Expected the worker to be {expected.value}, but it is {self.state.value}")

    async def __aenter__(self) -> Self:
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        # Only cancellation is handed to the task group; other errors stay with the caller.
        if exc_value is not None and not isinstance(exc_value, anyio.get_cancelled_exc_class()):
            exc_type, exc_value, traceback = None, None, None
        await task_group.__aexit__(exc_type, exc_value, traceback)
