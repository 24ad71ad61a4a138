from ._async import (
    ActivateEvent as ActivateEvent,
    AnyEvent as AnyEvent,
    AsyncBaseCache as AsyncBaseCache,
    AsyncBaseStorage as AsyncBaseStorage,
    AsyncFileStorage as AsyncFileStorage,
    AsyncInMemoryStorage as AsyncInMemoryStorage,
    AsyncOfflineClient as AsyncOfflineClient,
    AsyncOfflineTransport as AsyncOfflineTransport,
    AsyncOfflineWorker as AsyncOfflineWorker,
    AsyncSQLiteStorage as AsyncSQLiteStorage,
    AsyncStrategyExecutor as AsyncStrategyExecutor,
    AsyncWorkerRegistration as AsyncWorkerRegistration,
    FetchEvent as FetchEvent,
    InstallEvent as InstallEvent,
    MessageEvent as MessageEvent,
    MockAsyncTransport as MockAsyncTransport,
    SyncEvent as SyncEvent,
    WorkerState as WorkerState,
    generate_offline_response as generate_offline_response,
)
from ._classifier import RequestClass as RequestClass, classify as classify
from ._config import WorkerConfig as WorkerConfig
from ._exceptions import (
    CacheControlError as CacheControlError,
    InvalidStateError as InvalidStateError,
    OfflineCacheError as OfflineCacheError,
    ParseError as ParseError,
    PrecacheError as PrecacheError,
    ValidationError as ValidationError,
)
from ._headers import CacheControl as CacheControl, Vary as Vary, parse_cache_control as parse_cache_control
from ._serializers import (
    BaseSerializer as BaseSerializer,
    JSONSerializer as JSONSerializer,
    PickleSerializer as PickleSerializer,
)

__all__ = (
    # Worker
    "AsyncOfflineWorker",
    "AsyncWorkerRegistration",
    "WorkerState",
    "WorkerConfig",
    ## Events
    "AnyEvent",
    "InstallEvent",
    "ActivateEvent",
    "FetchEvent",
    "MessageEvent",
    "SyncEvent",
    # Classification & strategies
    "RequestClass",
    "classify",
    "AsyncStrategyExecutor",
    "generate_offline_response",
    # Storages
    "AsyncBaseStorage",
    "AsyncBaseCache",
    "AsyncInMemoryStorage",
    "AsyncFileStorage",
    "AsyncSQLiteStorage",
    # Serializers
    "BaseSerializer",
    "JSONSerializer",
    "PickleSerializer",
    # httpx integration
    "AsyncOfflineTransport",
    "AsyncOfflineClient",
    "MockAsyncTransport",
    # Headers
    "CacheControl",
    "Vary",
    "parse_cache_control",
    # Exceptions
    "OfflineCacheError",
    "PrecacheError",
    "InvalidStateError",
    "CacheControlError",
    "ParseError",
    "ValidationError",
)

__version__ = "0.1.0"
