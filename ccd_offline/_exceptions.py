__all__ = (
    "OfflineCacheError",
    "PrecacheError",
    "InvalidStateError",
    "CacheControlError",
    "ParseError",
    "ValidationError",
)


class OfflineCacheError(Exception): ...


class PrecacheError(OfflineCacheError):
    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class InvalidStateError(OfflineCacheError): ...


class CacheControlError(Exception): ...


class ParseError(CacheControlError): ...


class ValidationError(CacheControlError): ...
