from __future__ import annotations

from session_killer.core.providers.base import BaseProvider, ServerConfig
from session_killer.core.providers.jellyfin import JellyfinProvider
from session_killer.core.providers.plex import PlexProvider
from session_killer.core.providers.tautulli import TautulliProvider


def _coerce_server(server) -> ServerConfig:
    # Déjà au bon format
    if isinstance(server, ServerConfig):
        return server

    # Cas courant: dict (tests, config brute)
    if isinstance(server, dict):
        return ServerConfig(
            id=int(server.get("id") or 0),
            name=str(server.get("name") or f"Server {server.get('id') or '?'}"),
            type=str(server.get("type") or "tautulli"),
            endpoint=str(server.get("endpoint") or ""),
            credential=str(server.get("credential") or ""),
        )

    raise TypeError(f"Unsupported server config: {type(server).__name__}")


def get_provider(server, timeout: int = 10) -> BaseProvider:
    srv = _coerce_server(server)
    t = (srv.type or "").lower()

    if t == "tautulli":
        return TautulliProvider(srv, timeout=timeout)
    if t == "plex":
        return PlexProvider(srv, timeout=timeout)
    if t == "jellyfin":
        return JellyfinProvider(srv, timeout=max(timeout, 15))

    raise ValueError(f"Unsupported provider type: {t}")
