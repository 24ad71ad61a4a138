from __future__ import annotations

import logging
import typing as tp

import httpx

from .._exceptions import PrecacheError
from ._worker import AsyncOfflineWorker, WorkerState

logger = logging.getLogger("ccd_offline.registration")

__all__ = ("AsyncWorkerRegistration",)


class AsyncWorkerRegistration:
    """
    Keeps track of the installing, waiting and active worker of one scope.

    A newly installed worker waits while clients are connected to the active one,
    unless it asks to skip waiting. Fetches always go to the active worker, so an
    install that fails leaves the previous generation serving requests.
    """

    def __init__(self) -> None:
        self.installing: tp.Optional[AsyncOfflineWorker] = None
        self.waiting: tp.Optional[AsyncOfflineWorker] = None
        self.active: tp.Optional[AsyncOfflineWorker] = None
        self.controller: tp.Optional[AsyncOfflineWorker] = None
        self._clients: tp.Set[str] = set()

    @property
    def clients(self) -> tp.FrozenSet[str]:
        return frozenset(self._clients)

    async def register(self, worker: AsyncOfflineWorker) -> AsyncOfflineWorker:
        """
        Installs the worker and activates it when nothing holds it back.

        :param worker: A freshly created worker
        :type worker: AsyncOfflineWorker
        :raises PrecacheError: When the install failed
        :return: The same worker
        :rtype: AsyncOfflineWorker
        """

        worker.attach(self)
        self.installing = worker
        try:
            await worker.handle_install()
        except PrecacheError:
            logger.warning("Install of %r failed, keeping the current worker", worker.config.cache_name)
            raise
        finally:
            self.installing = None

        if self.waiting is not None:
            self.waiting.become_redundant()
        self.waiting = worker

        if self.active is None or not self._clients or worker.skip_waiting_requested:
            await self.promote_waiting()
        else:
            logger.info(
                "Worker for %r is waiting for %d client(s) to close", worker.config.cache_name, len(self._clients)
            )
        return worker

    async def promote_waiting(self) -> None:
        worker, self.waiting = self.waiting, None
        if worker is None:
            return

        previous = self.active
        self.active = worker
        if previous is not None:
            previous.become_redundant()
        await worker.handle_activate()

    def claimed_by(self, worker: AsyncOfflineWorker) -> None:
        self.controller = worker

    def connect_client(self, client_id: str) -> None:
        self._clients.add(client_id)

    async def disconnect_client(self, client_id: str) -> None:
        self._clients.discard(client_id)
        if not self._clients and self.waiting is not None:
            await self.promote_waiting()

    async def fetch(self, request: httpx.Request) -> tp.Optional[httpx.Response]:
        """
        Lets the controlling worker answer the request.

        :return: The worker's response, or `None` if the request should go to the network
        :rtype: tp.Optional[httpx.Response]
        """

        worker = self.controller
        if worker is None or worker.state is not WorkerState.ACTIVATED:
            return None
        return await worker.handle_fetch(request)

    async def post_message(self, data: tp.Any) -> tp.Any:
        """
        Delivers an application message to the active worker.

        ``SKIP_WAITING`` goes to the waiting worker when there is one.
        """

        worker = self.active
        if isinstance(data, tp.Mapping) and data.get("type") == "SKIP_WAITING" and self.waiting is not None:
            worker = self.waiting
        if worker is None:
            logger.debug("No worker to deliver the message to")
            return None
        return await worker.handle_message(data)
