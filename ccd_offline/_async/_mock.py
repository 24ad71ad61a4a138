import typing as tp
from types import TracebackType

import httpx

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

__all__ = ("MockAsyncTransport",)

MockedResult = tp.Union[httpx.Response, Exception]


class MockAsyncTransport(httpx.AsyncBaseTransport):
    """
    Answers requests with queued responses, in order.

    A queued exception is raised instead, which is how tests simulate the network going away.
    Every request seen is kept in `requests`.
    """

    def __init__(self) -> None:
        self.mocked_responses: tp.List[MockedResult] = []
        self.requests: tp.List[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.mocked_responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def add_responses(self, responses: tp.List[MockedResult]) -> None:
        self.mocked_responses.extend(responses)

    async def __aenter__(self) -> "Self":
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[TracebackType] = None,
    ) -> None: ...
