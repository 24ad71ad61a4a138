from __future__ import annotations

import typing as tp
from dataclasses import dataclass, field

import httpx

__all__ = ("WorkerConfig", "DEFAULT_PRECACHE_ASSETS")

DEFAULT_PRECACHE_ASSETS: tp.Tuple[str, ...] = (
    "/",
    "/index.html",
    "/offline.html",
    "/cd-logo.svg",
    "/favicon.ico",
)


@dataclass(frozen=True)
class WorkerConfig:
    """
    Settings of an offline worker.

    Bumping `cache_name` is the only way to drop every previously stored entry: the next
    activation deletes all caches with a different name.
    """

    cache_name: str = "ccd-v1.0.0"
    """Name of the live cache generation."""

    precache_assets: tp.Tuple[str, ...] = DEFAULT_PRECACHE_ASSETS
    """Paths fetched and stored before the worker counts as installed."""

    origin: str = "http://localhost"
    """Origin the worker serves. Relative precache paths are resolved against it."""

    backend_host: str = "supabase.co"
    """Host (or parent domain) of the backing data store."""

    functions_prefix: str = "/.netlify/functions/"
    """Path prefix of serverless functions, never intercepted."""

    static_destinations: tp.FrozenSet[str] = field(
        default_factory=lambda: frozenset({"script", "style", "image", "font"})
    )
    """Request destinations served cache-first."""

    skip_waiting_on_install: bool = True
    """Ask to activate right after a successful install instead of waiting for clients to go away."""

    def __post_init__(self) -> None:
        if not self.cache_name:
            raise ValueError("`cache_name` must not be empty")
        object.__setattr__(self, "precache_assets", tuple(self.precache_assets))
        object.__setattr__(self, "static_destinations", frozenset(self.static_destinations))

    def resolve(self, url: str) -> httpx.URL:
        return httpx.URL(self.origin).join(url)
