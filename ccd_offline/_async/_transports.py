from __future__ import annotations

import logging
import types
import typing as tp

import httpx

from .._config import WorkerConfig
from .._exceptions import PrecacheError
from ._registration import AsyncWorkerRegistration
from ._storages import AsyncBaseStorage
from ._worker import AsyncOfflineWorker

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("ccd_offline.transports")

__all__ = ("AsyncOfflineTransport",)


class AsyncOfflineTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX Transport that puts an offline worker in front of the network.

    Entering the transport installs and activates the worker. If the install fails the
    transport keeps working and sends every request to the network.
    Until the transport is entered, with `async with` or through the client that owns
    it, no worker is running and every request goes to the network.

    :param transport: `Transport` that our class wraps in order to add the offline layer on top of
    :type transport: httpx.AsyncBaseTransport
    :param storage: Storage for the cache generations, defaults to None
    :type storage: tp.Optional[AsyncBaseStorage], optional
    :param config: Worker settings, defaults to None
    :type config: tp.Optional[WorkerConfig], optional
    :param registration: Registration shared with other transports of the same scope, defaults to None
    :type registration: tp.Optional[AsyncWorkerRegistration], optional
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        storage: tp.Optional[AsyncBaseStorage] = None,
        config: tp.Optional[WorkerConfig] = None,
        registration: tp.Optional[AsyncWorkerRegistration] = None,
    ) -> None:
        self._transport = transport
        self.registration = registration if registration is not None else AsyncWorkerRegistration()
        self.worker = AsyncOfflineWorker(
            request_sender=self._transport.handle_async_request,
            storage=storage,
            config=config,
        )
        self._entered = False
        self._reported_not_entered = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """
        Answers from the worker when it intercepts the request, from the network otherwise.

        :param request: An HTTP request
        :type request: httpx.Request
        :return: An HTTP response
        :rtype: httpx.Response
        """

        if not self._entered:
            if not self._reported_not_entered:
                self._reported_not_entered = True
                logger.debug("Offline transport was not entered, requests go straight to the network")
            return await self._transport.handle_async_request(request)

        response = await self.registration.fetch(request)
        if response is not None:
            return response
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self.worker.storage.aclose()
        await self._transport.aclose()

    async def __aenter__(self) -> Self:
        await self._transport.__aenter__()
        await self.worker.__aenter__()
        self._entered = True
        try:
            await self.registration.register(self.worker)
        except PrecacheError as exc:
            logger.error("Offline worker could not be installed, requests go straight to the network: %s", exc)
        except BaseException as exc:
            await self.__aexit__(type(exc), exc, exc.__traceback__)
            raise
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        await self.worker.__aexit__(exc_type, exc_value, traceback)
        self._entered = False
        await self.aclose()
