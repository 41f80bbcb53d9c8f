"""Resolve the single enabled source adapter from configuration."""

from __future__ import annotations

from collections.abc import Callable
from typing import Final

import httpx

from statusbridge.config import AppConfig, config_key
from statusbridge.errors import ConfigurationError
from statusbridge.integrations.contracts import SourceAdapter
from statusbridge.integrations.lastfm_adapter import LastFMAdapter
from statusbridge.integrations.listenbrainz_adapter import ListenBrainzAdapter
from statusbridge.integrations.revolt_client import RevoltStatusClient
from statusbridge.logging import get_logger

logger = get_logger(__name__)

_AdapterFactory = Callable[[AppConfig, httpx.AsyncBaseTransport | None], SourceAdapter]


def _build_lastfm(config: AppConfig, transport: httpx.AsyncBaseTransport | None) -> SourceAdapter:
    options = config.lastfm
    if options is None:
        raise ConfigurationError("Last.fm is not configured", key=config_key("service", "lastfm"))
    return LastFMAdapter(
        username=options.username,
        api_key=options.api_key,
        check_interval=options.check_interval,
        api_url=options.api_url,
        timeout_ms=config.http.timeout_ms,
        transport=transport,
    )


def _build_listenbrainz(
    config: AppConfig, transport: httpx.AsyncBaseTransport | None
) -> SourceAdapter:
    options = config.listenbrainz
    if options is None:
        raise ConfigurationError(
            "ListenBrainz is not configured", key=config_key("service", "listenbrainz")
        )
    return ListenBrainzAdapter(
        username=options.username,
        check_interval=options.check_interval,
        api_url=options.api_url,
        token=options.token,
        timeout_ms=config.http.timeout_ms,
        transport=transport,
    )


_FACTORIES: Final[dict[str, _AdapterFactory]] = {
    "lastfm": _build_lastfm,
    "listenbrainz": _build_listenbrainz,
}


def build_source_adapter(
    config: AppConfig, *, transport: httpx.AsyncBaseTransport | None = None
) -> SourceAdapter:
    """Return the adapter for the one enabled source.

    Zero or several enabled sources is a configuration error.
    """

    enabled = config.enabled_sources()
    if not enabled:
        raise ConfigurationError("None of the services are enabled. One service must be enabled.")
    if len(enabled) > 1:
        raise ConfigurationError(
            f"More than one service ({', '.join(enabled)}) is enabled. "
            "Only one service can be enabled at a time."
        )
    name = enabled[0]
    adapter = _FACTORIES[name](config, transport)
    logger.info("Using %s as the now-playing source", name)
    return adapter


def build_status_client(
    config: AppConfig, *, transport: httpx.AsyncBaseTransport | None = None
) -> RevoltStatusClient:
    return RevoltStatusClient(
        session_token=config.revolt.session_token,
        api_url=config.revolt.api_url,
        timeout_ms=config.http.timeout_ms,
        transport=transport,
    )


__all__ = ["build_source_adapter", "build_status_client"]
