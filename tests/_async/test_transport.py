import httpx
import pytest

from ccd_offline import (
    AsyncInMemoryStorage,
    AsyncOfflineTransport,
    MockAsyncTransport,
    WorkerConfig,
    WorkerState,
)


@pytest.mark.anyio
async def test_transport_installs_on_enter():
    network = MockAsyncTransport()
    network.add_responses([httpx.Response(200, content=b"<html>")])
    storage = AsyncInMemoryStorage()

    async with AsyncOfflineTransport(
        transport=network, storage=storage, config=WorkerConfig(precache_assets=("/index.html",))
    ) as transport:
        assert transport.worker.state is WorkerState.ACTIVATED
        assert transport.registration.active is transport.worker

    response = await storage.match(httpx.Request("GET", "http://localhost/index.html"))
    assert response.content == b"<html>"


@pytest.mark.anyio
async def test_transport_caches_static_assets_across_sessions():
    storage = AsyncInMemoryStorage()
    config = WorkerConfig(precache_assets=())
    network = MockAsyncTransport()
    network.add_responses([httpx.Response(200, content=b"app()")])

    async with httpx.AsyncClient(transport=AsyncOfflineTransport(network, storage=storage, config=config)) as client:
        first = await client.get("http://localhost/app.js", extensions={"destination": "script"})

    async with httpx.AsyncClient(transport=AsyncOfflineTransport(network, storage=storage, config=config)) as client:
        second = await client.get("http://localhost/app.js", extensions={"destination": "script"})

    assert first.text == second.text == "app()"
    assert not first.extensions["from_cache"]
    assert second.extensions["from_cache"]
    assert len(network.requests) == 1


@pytest.mark.anyio
async def test_transport_passes_bypassed_requests_to_network():
    network = MockAsyncTransport()
    network.add_responses([httpx.Response(201, json={"id": 7}), httpx.Response(200, text="page")])

    async with AsyncOfflineTransport(transport=network, config=WorkerConfig(precache_assets=())) as transport:
        created = await transport.handle_async_request(httpx.Request("POST", "http://localhost/api/lessons"))
        page = await transport.handle_async_request(
            httpx.Request("GET", "http://localhost/lesson-builder", extensions={"mode": "navigate"})
        )

    assert created.status_code == 201
    assert page.status_code == 200
    assert "from_cache" not in page.extensions
    cache = await transport.worker.storage.open("ccd-v1.0.0")
    assert await cache.keys() == []


@pytest.mark.anyio
async def test_transport_answers_backend_requests_when_offline():
    network = MockAsyncTransport()
    network.add_responses([httpx.ConnectError("offline")])

    transport = AsyncOfflineTransport(transport=network, config=WorkerConfig(precache_assets=()))
    async with httpx.AsyncClient(transport=transport) as client:
        response = await client.get("https://abc.supabase.co/rest/v1/lessons")

    assert response.status_code == 503
    assert response.json() == {"error": "Offline", "message": "No internet connection"}


@pytest.mark.anyio
async def test_failed_install_falls_back_to_network(caplog):
    network = MockAsyncTransport()
    network.add_responses([httpx.ConnectError("offline"), httpx.Response(200, content=b"app()")])

    async with AsyncOfflineTransport(transport=network, config=WorkerConfig(precache_assets=("/",))) as transport:
        response = await transport.handle_async_request(
            httpx.Request("GET", "http://localhost/app.js", extensions={"destination": "script"})
        )

    assert transport.worker.state is WorkerState.REDUNDANT
    assert transport.registration.active is None
    assert response.content == b"app()"
    assert "could not be installed" in caplog.text


class ClosingTransport(MockAsyncTransport):
    closed = False

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.anyio
async def test_unexpected_install_error_closes_transport():
    network = ClosingTransport()
    network.add_responses([RuntimeError("boom")])
    transport = AsyncOfflineTransport(transport=network, config=WorkerConfig(precache_assets=("/",)))

    with pytest.raises(RuntimeError):
        async with transport:
            pass  # pragma: no cover

    assert network.closed
    assert transport.worker.state is WorkerState.REDUNDANT
    assert transport.registration.installing is None
