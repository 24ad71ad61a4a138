import typing as tp

import httpx

from .._config import WorkerConfig
from ._storages import AsyncBaseStorage
from ._transports import AsyncOfflineTransport

__all__ = ("AsyncOfflineClient",)


class AsyncOfflineClient(httpx.AsyncClient):
    def __init__(
        self,
        *args: tp.Any,
        storage: tp.Optional[AsyncBaseStorage] = None,
        config: tp.Optional[WorkerConfig] = None,
        **kwargs: tp.Any,
    ):
        self._storage = storage
        self._config = config
        super().__init__(*args, **kwargs)

    def _init_transport(self, *args, **kwargs) -> AsyncOfflineTransport:  # type: ignore
        _transport = super()._init_transport(*args, **kwargs)
        return AsyncOfflineTransport(
            transport=_transport,
            storage=self._storage,
            config=self._config,
        )

    def _init_proxy_transport(self, *args, **kwargs) -> AsyncOfflineTransport:  # type: ignore
        _transport = super()._init_proxy_transport(*args, **kwargs)  # pragma: no cover
        return AsyncOfflineTransport(  # pragma: no cover
            transport=_transport,
            storage=self._storage,
            config=self._config,
        )
