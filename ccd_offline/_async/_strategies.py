from __future__ import annotations

import logging
import typing as tp

import httpx
from typing_extensions import assert_never

from .._classifier import RequestClass
from .._utils import clone_response
from ._storages import AsyncBaseCache, AsyncBaseStorage

logger = logging.getLogger("ccd_offline.strategies")

__all__ = ("AsyncStrategyExecutor", "generate_offline_response", "OFFLINE_BODY")

RequestSender = tp.Callable[[httpx.Request], tp.Awaitable[httpx.Response]]
BackgroundRunner = tp.Callable[..., tp.Awaitable[None]]

OFFLINE_BODY = {"error": "Offline", "message": "No internet connection"}


def generate_offline_response() -> httpx.Response:
    return httpx.Response(
        status_code=503,
        json=OFFLINE_BODY,
        extensions={"from_cache": False, "offline": True},
    )


def _mark(response: httpx.Response, from_cache: bool) -> httpx.Response:
    response.extensions["from_cache"] = from_cache  # type: ignore[index]
    return response


class AsyncStrategyExecutor:
    """
    Runs the caching strategy of a request class against the live cache.

    :param request_sender: Sends a request over the network
    :type request_sender: RequestSender
    :param storage: Storage holding the live cache
    :type storage: AsyncBaseStorage
    :param cache_name: Name of the live cache
    :type cache_name: str
    :param background: Runs a coroutine function without making the caller wait for it
    :type background: BackgroundRunner
    """

    def __init__(
        self,
        request_sender: RequestSender,
        storage: AsyncBaseStorage,
        cache_name: str,
        background: BackgroundRunner,
    ) -> None:
        self._send = request_sender
        self._storage = storage
        self._cache_name = cache_name
        self._background = background

    async def execute(self, request_class: RequestClass, request: httpx.Request) -> tp.Optional[httpx.Response]:
        """
        Returns a response for the request, or `None` when it should go to the network untouched.
        """

        if request_class is RequestClass.BYPASS:
            return None
        elif request_class is RequestClass.BACKEND:
            return await self.network_only(request)
        elif request_class is RequestClass.STATIC_ASSET:
            return await self.cache_first(request)
        elif request_class is RequestClass.DEFAULT:
            return await self.network_first(request)
        else:
            assert_never(request_class)

    async def cache_first(self, request: httpx.Request) -> httpx.Response:
        cache = await self._storage.open(self._cache_name)

        cached_response = await cache.match(request)
        if cached_response is not None:
            logger.debug("Serving %s from cache %r", request.url, self._cache_name)
            return _mark(cached_response, from_cache=True)

        logger.debug("Cache miss for %s, fetching from the network", request.url)
        response = await self._send(request)
        return await self._store_if_ok(cache, request, response)

    async def network_first(self, request: httpx.Request) -> httpx.Response:
        cache = await self._storage.open(self._cache_name)

        try:
            response = await self._send(request)
        except httpx.TransportError:
            cached_response = await cache.match(request)
            if cached_response is None:
                logger.debug("Network failed for %s and nothing is cached", request.url)
                raise
            logger.debug("Network failed for %s, serving from cache %r", request.url, self._cache_name)
            return _mark(cached_response, from_cache=True)

        return await self._store_if_ok(cache, request, response)

    async def network_only(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._send(request)
        except httpx.TransportError as exc:
            logger.debug("Backend request to %s failed (%s), answering with an offline error", request.url, exc)
            return generate_offline_response()
        return _mark(response, from_cache=False)

    async def _store_if_ok(
        self, cache: AsyncBaseCache, request: httpx.Request, response: httpx.Response
    ) -> httpx.Response:
        if response.status_code != 200:
            return _mark(response, from_cache=False)

        await response.aread()
        await self._background(self._put_quietly, cache, request, clone_response(response))
        return _mark(clone_response(response), from_cache=False)

    async def _put_quietly(self, cache: AsyncBaseCache, request: httpx.Request, response: httpx.Response) -> None:
        try:
            await cache.put(request, response)
        except Exception:
            logger.warning("Could not store %s in cache %r", request.url, cache.name, exc_info=True)
