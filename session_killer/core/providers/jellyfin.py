from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from session_killer.core.providers.base import (
    BaseProvider,
    SourceInvalidResponse,
    SourceUnreachable,
    TerminationError,
)
from session_killer.logging_utils import get_logger

logger = get_logger("providers.jellyfin")

MESSAGE_TITLE = "Stream limit"
MESSAGE_TIMEOUT_MS = 10000


class JellyfinProvider(BaseProvider):
    provider_name = "jellyfin"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Emby-Token": self._credential(),
            "Accept": "application/json",
        }

    def _get_json(self, path: str) -> Any:
        r = self._http("GET", f"{self._base_url()}{path}", headers=self._headers())
        try:
            return r.json()
        except ValueError as e:
            raise SourceInvalidResponse(f"[{self.name}] Invalid JSON from Jellyfin") from e

    def _post_json(self, path: str, payload: Optional[dict] = None, error_cls=SourceUnreachable) -> requests.Response:
        return self._http(
            "POST",
            f"{self._base_url()}{path}",
            error_cls=error_cls,
            headers=self._headers(),
            json=(payload or {}),
        )

    def get_active_sessions(self) -> List[Dict[str, Any]]:
        data = self._get_json("/Sessions")
        if not isinstance(data, list):
            raise SourceInvalidResponse(f"[{self.name}] /Sessions did not return a list")

        sessions: List[Dict[str, Any]] = []
        for s in data:
            if not isinstance(s, dict):
                raise SourceInvalidResponse(f"[{self.name}] session entry is not an object")

            # IMPORTANT:
            # Jellyfin garde des "sessions" client sans lecture en cours
            # (NowPlayingItem absent) : ce ne sont pas des streams.
            now_playing = s.get("NowPlayingItem") or {}
            item_id = now_playing.get("Id")
            if not item_id:
                continue

            session_id = s.get("Id")
            sessions.append({
                "username": s.get("UserName") or (s.get("User") or {}).get("Name"),
                "session_id": session_id,
                "session_key": f"{session_id}:{item_id}" if session_id else None,
            })

        return sessions

    def terminate(self, session_id: str, session_key: str, message: str) -> str:
        # Jellyfin ignore la raison du Stop : on affiche d'abord le message au client
        if message:
            try:
                self._post_json(
                    f"/Sessions/{session_id}/Message",
                    {"Header": MESSAGE_TITLE, "Text": message, "TimeoutMs": MESSAGE_TIMEOUT_MS},
                    error_cls=TerminationError,
                )
            except TerminationError as e:
                logger.warning(f"[{self.name}] message before stop failed session={session_id}: {e}")

        r = self._post_json(f"/Sessions/{session_id}/Playing/Stop", {}, error_cls=TerminationError)
        return r.text

    def check(self) -> Dict[str, Any]:
        info = self._get_json("/System/Info") or {}
        return {
            "status": "up",
            "name": info.get("ServerName"),
            "machine_id": info.get("Id"),
            "version": info.get("Version"),
        }
