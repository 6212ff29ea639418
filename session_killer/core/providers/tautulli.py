from __future__ import annotations

from typing import Any, Dict, List

import requests

from session_killer.core.providers.base import (
    BaseProvider,
    SourceInvalidResponse,
    SourceUnreachable,
    TerminationError,
)


class TautulliProvider(BaseProvider):
    """
    Tautulli API v2 : GET {endpoint}?apikey=...&cmd=...
    (l'endpoint inclut déjà /api/v2)
    """
    provider_name = "tautulli"

    def _api(self, cmd: str, error_cls=SourceUnreachable, **params: Any) -> requests.Response:
        p = {"apikey": self._credential(), "cmd": cmd}
        p.update(params)
        # requests encode les paramètres (espaces, &, ! ...) dans l'URL
        return self._http("GET", self._base_url(), error_cls=error_cls, params=p)

    def _json(self, r: requests.Response) -> Dict[str, Any]:
        try:
            payload = r.json()
        except ValueError as e:
            raise SourceInvalidResponse(f"[{self.name}] Invalid JSON from Tautulli") from e
        if not isinstance(payload, dict):
            raise SourceInvalidResponse(f"[{self.name}] Unexpected Tautulli payload")
        return payload

    def get_active_sessions(self) -> List[Dict[str, Any]]:
        payload = self._json(self._api("get_activity"))

        response = payload.get("response")
        data = response.get("data") if isinstance(response, dict) else None
        sessions = data.get("sessions") if isinstance(data, dict) else None

        if not isinstance(sessions, list):
            raise SourceInvalidResponse(f"[{self.name}] response.data.sessions missing")

        out: List[Dict[str, Any]] = []
        for s in sessions:
            if not isinstance(s, dict):
                raise SourceInvalidResponse(f"[{self.name}] session entry is not an object")
            out.append({
                "username": s.get("username"),
                "session_id": s.get("session_id"),
                "session_key": s.get("session_key"),
            })
        return out

    def terminate(self, session_id: str, session_key: str, message: str) -> str:
        r = self._api(
            "terminate_session",
            error_cls=TerminationError,
            session_id=session_id,
            session_key=session_key,
            message=message,
        )
        return r.text

    def check(self) -> Dict[str, Any]:
        payload = self._json(self._api("status"))
        response = payload.get("response") or {}
        return {
            "status": "up" if response.get("result") == "success" else "unknown",
            "message": response.get("message"),
        }
