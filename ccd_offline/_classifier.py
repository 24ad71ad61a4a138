from __future__ import annotations

import enum
import logging

import httpx

from ._config import WorkerConfig
from ._exceptions import CacheControlError
from ._headers import parse_cache_control, parse_pragma
from ._utils import host_matches, origin_of

__all__ = ("RequestClass", "classify", "BYPASS_CACHE_MODES")

logger = logging.getLogger("ccd_offline.classifier")

BYPASS_CACHE_MODES = ("reload", "no-store")


class RequestClass(enum.Enum):
    BYPASS = "bypass"
    """Not intercepted; the request goes straight to the network."""

    BACKEND = "backend"
    """Backing data store; network only with an offline JSON error."""

    STATIC_ASSET = "static-asset"
    """Scripts, styles, images and fonts; cache first."""

    DEFAULT = "default"
    """Any other same-origin GET; network first with cache fallback."""


def _asks_to_skip_cache(request: httpx.Request) -> bool:
    if request.extensions.get("cache") in BYPASS_CACHE_MODES:
        return True

    if "no-cache" in parse_pragma(request.headers.get_list("pragma")):
        return True

    try:
        cache_control = parse_cache_control(request.headers.get_list("cache-control"))
    except CacheControlError:
        logger.debug("Ignoring malformed Cache-Control header: %r", request.headers.get("cache-control"))
        return False
    return cache_control.forbids_cache


def classify(request: httpx.Request, config: WorkerConfig) -> RequestClass:
    """
    Picks the caching strategy for a request.

    The request is described by its method, URL and headers plus these
    `request.extensions` keys:

    * ``"mode"``: ``"navigate"`` for full page loads
    * ``"destination"``: ``"script"``, ``"style"``, ``"image"``, ``"font"``, ...
    * ``"cache"``: the fetch cache mode, e.g. ``"reload"`` or ``"no-store"``

    Rules are checked in order and the first match wins. Navigation requests are
    never intercepted, so a partially cached page can not be served.

    :param request: An HTTP request
    :type request: httpx.Request
    :param config: Worker settings
    :type config: WorkerConfig
    :return: The class of the request
    :rtype: RequestClass
    """

    if request.method != "GET":
        return RequestClass.BYPASS

    if request.url.path.startswith(config.functions_prefix):
        return RequestClass.BYPASS

    if _asks_to_skip_cache(request):
        return RequestClass.BYPASS

    if request.extensions.get("mode") == "navigate":
        return RequestClass.BYPASS

    if host_matches(request.url.host, config.backend_host):
        return RequestClass.BACKEND

    if origin_of(request.url) != origin_of(config.origin):
        return RequestClass.BYPASS

    if request.extensions.get("destination") in config.static_destinations:
        return RequestClass.STATIC_ASSET

    return RequestClass.DEFAULT
