import anysqlite
import httpx
import pytest

from ccd_offline import AsyncFileStorage, AsyncInMemoryStorage, AsyncSQLiteStorage, JSONSerializer, PickleSerializer


@pytest.fixture(params=["memory", "file-json", "file-pickle", "sqlite"])
async def storage(request, tmp_path, anyio_backend):
    if request.param == "memory":
        yield AsyncInMemoryStorage()
    elif request.param == "file-json":
        yield AsyncFileStorage(serializer=JSONSerializer(), base_path=tmp_path / "cache")
    elif request.param == "file-pickle":
        yield AsyncFileStorage(serializer=PickleSerializer(), base_path=tmp_path / "cache")
    else:
        sqlite_storage = AsyncSQLiteStorage(connection=await anysqlite.connect(":memory:"))
        yield sqlite_storage
        await sqlite_storage.aclose()


def get(url: str, **headers: str) -> httpx.Request:
    return httpx.Request("GET", url, headers=headers)


@pytest.mark.anyio
async def test_open_creates_cache(storage):
    assert await storage.keys() == []
    assert not await storage.has("v1")

    cache = await storage.open("v1")

    assert cache.name == "v1"
    assert await storage.has("v1")
    assert await storage.keys() == ["v1"]


@pytest.mark.anyio
async def test_put_and_match(storage):
    cache = await storage.open("v1")
    request = get("https://example.com/app.js")

    await cache.put(request, httpx.Response(200, headers={"Content-Type": "text/javascript"}, content=b"app()"))

    response = await cache.match(get("https://example.com/app.js"))
    assert response is not None
    assert response.status_code == 200
    assert response.content == b"app()"
    assert response.headers["content-type"] == "text/javascript"
    assert await cache.match(get("https://example.com/other.js")) is None


@pytest.mark.anyio
async def test_match_returns_fresh_copies(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/"), httpx.Response(200, content=b"index"))

    first = await cache.match(get("https://example.com/"))
    second = await cache.match(get("https://example.com/"))

    assert first is not second
    assert first.content == second.content == b"index"


@pytest.mark.anyio
async def test_put_overwrites(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/data"), httpx.Response(200, content=b"old"))
    await cache.put(get("https://example.com/data"), httpx.Response(200, content=b"new"))

    response = await cache.match(get("https://example.com/data"))
    assert response.content == b"new"
    assert len(await cache.keys()) == 1


@pytest.mark.anyio
async def test_only_get_can_be_stored(storage):
    cache = await storage.open("v1")

    with pytest.raises(TypeError):
        await cache.put(httpx.Request("POST", "https://example.com/"), httpx.Response(200))

    assert await cache.match(httpx.Request("POST", "https://example.com/")) is None


@pytest.mark.anyio
async def test_vary_headers(storage):
    cache = await storage.open("v1")
    await cache.put(
        get("https://example.com/strings", **{"Accept-Language": "en"}),
        httpx.Response(200, headers={"Vary": "Accept-Language"}, content=b"hello"),
    )

    assert await cache.match(get("https://example.com/strings", **{"Accept-Language": "en"})) is not None
    assert await cache.match(get("https://example.com/strings", **{"Accept-Language": "fr"})) is None


@pytest.mark.anyio
async def test_vary_accept_encoding_is_ignored(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/logo.svg"), httpx.Response(200, headers={"Vary": "Accept-Encoding"}))

    assert await cache.match(get("https://example.com/logo.svg", **{"Accept-Encoding": "gzip, br"})) is not None


@pytest.mark.anyio
async def test_vary_star_never_matches(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/"), httpx.Response(200, headers={"Vary": "*"}))

    assert await cache.match(get("https://example.com/")) is None


@pytest.mark.anyio
async def test_cache_keys_and_delete(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/a"), httpx.Response(200))
    await cache.put(get("https://example.com/b"), httpx.Response(200))

    assert sorted(str(request.url) for request in await cache.keys()) == [
        "https://example.com/a",
        "https://example.com/b",
    ]

    assert await cache.delete(get("https://example.com/a"))
    assert not await cache.delete(get("https://example.com/a"))
    assert [str(request.url) for request in await cache.keys()] == ["https://example.com/b"]


@pytest.mark.anyio
async def test_caches_are_isolated(storage):
    v1 = await storage.open("v1")
    v2 = await storage.open("v2")
    await v1.put(get("https://example.com/"), httpx.Response(200, content=b"one"))

    assert await v2.match(get("https://example.com/")) is None
    assert sorted(await storage.keys()) == ["v1", "v2"]


@pytest.mark.anyio
async def test_delete_cache(storage):
    cache = await storage.open("v1")
    await cache.put(get("https://example.com/"), httpx.Response(200))

    assert await storage.delete("v1")
    assert not await storage.delete("v1")
    assert await storage.keys() == []

    reopened = await storage.open("v1")
    assert await reopened.match(get("https://example.com/")) is None


@pytest.mark.anyio
async def test_writes_to_deleted_cache_are_not_visible(storage):
    cache = await storage.open("v1")
    await storage.delete("v1")

    await cache.put(get("https://example.com/"), httpx.Response(200))

    assert not await storage.has("v1")
    assert await storage.match(get("https://example.com/")) is None


@pytest.mark.anyio
async def test_storage_match_looks_in_every_cache(storage):
    await storage.open("v1")
    v2 = await storage.open("v2")
    await v2.put(get("https://example.com/logo.svg"), httpx.Response(200, content=b"<svg/>"))

    response = await storage.match(get("https://example.com/logo.svg"))
    assert response is not None
    assert response.content == b"<svg/>"


@pytest.mark.anyio
async def test_stored_body_is_decoded(storage):
    cache = await storage.open("v1")
    await cache.put(
        get("https://example.com/app.css"),
        httpx.Response(200, headers={"Content-Encoding": "identity"}, content=b"body{}"),
    )

    response = await cache.match(get("https://example.com/app.css"))
    assert "content-encoding" not in response.headers
    assert response.content == b"body{}"


@pytest.mark.anyio
async def test_file_storage_layout(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path)
    await storage.open("ccd-v1.0.0")
    await storage.open("a/b")

    assert (tmp_path / ".gitignore").is_file()
    assert (tmp_path / "ccd-v1.0.0").is_dir()
    assert await storage.keys() == ["a/b", "ccd-v1.0.0"]


@pytest.mark.anyio
async def test_file_storage_default_path(use_temp_dir):
    storage = AsyncFileStorage()
    await storage.open("v1")

    assert await storage.keys() == ["v1"]
