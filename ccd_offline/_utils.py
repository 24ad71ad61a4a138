from __future__ import annotations

import hashlib
import typing as tp

import httpx

DEFAULT_PORTS = {"http": 80, "https": 443}

# Stored bodies are already decoded, so these no longer describe them.
BODY_FRAMING_HEADERS = ("content-encoding", "content-length", "transfer-encoding")


def normalized_url(url: tp.Union[httpx.URL, str]) -> str:
    """
    Drops the fragment and makes the default port implicit.

    Example:
        ```
        normalized_url("https://example.com:443/app.js#top")
        # 'https://example.com/app.js'
        ```
    """
    url = httpx.URL(url)
    if url.port is not None and DEFAULT_PORTS.get(url.scheme) == url.port:
        url = url.copy_with(port=None)
    return str(url.copy_with(fragment=None))


def generate_key(method: str, url: tp.Union[httpx.URL, str]) -> str:
    encoded = f"{method.upper()}|{normalized_url(url)}".encode("ascii", errors="replace")
    return hashlib.blake2b(encoded, digest_size=16).hexdigest()


def origin_of(url: tp.Union[httpx.URL, str]) -> tp.Tuple[str, str, tp.Optional[int]]:
    url = httpx.URL(url)
    port = url.port if url.port is not None else DEFAULT_PORTS.get(url.scheme)
    return url.scheme, url.host, port


def host_matches(host: str, domain: str) -> bool:
    host = host.lower().rstrip(".")
    domain = domain.lower().rstrip(".")
    return host == domain or host.endswith("." + domain)


def filter_header_pairs(
    headers: tp.Iterable[tp.Tuple[str, str]], keys_to_exclude: tp.Iterable[str]
) -> tp.List[tp.Tuple[str, str]]:
    exclude_set = {k.lower() for k in keys_to_exclude}
    return [(key, value) for key, value in headers if key.lower() not in exclude_set]


def clone_response(response: httpx.Response) -> httpx.Response:
    """
    Copies an already read response so that the body can be consumed twice.
    """
    extensions = {key: value for key, value in response.extensions.items() if key in ("http_version", "reason_phrase")}
    return httpx.Response(
        status_code=response.status_code,
        headers=filter_header_pairs(response.headers.multi_items(), BODY_FRAMING_HEADERS),
        content=response.content,
        extensions=extensions,
    )


def clone_request(request: httpx.Request) -> httpx.Request:
    return httpx.Request(
        method=request.method,
        url=normalized_url(request.url),
        headers=request.headers.multi_items(),
    )
