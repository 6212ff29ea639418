from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Dict, List

import requests
from plexapi.server import PlexServer

from session_killer.core.providers.base import (
    BaseProvider,
    SourceInvalidResponse,
    SourceUnreachable,
    TerminationError,
)


class PlexProvider(BaseProvider):
    provider_name = "plex"

    def _request(self, method: str, path: str, error_cls=SourceUnreachable, params=None) -> requests.Response:
        p = {"X-Plex-Token": self._credential()}
        if params:
            p.update(params)
        return self._http(method, f"{self._base_url()}{path}", error_cls=error_cls, params=p)

    def get_active_sessions(self) -> List[Dict[str, Any]]:
        xml_text = self._request("GET", "/status/sessions").text
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise SourceInvalidResponse(f"[{self.name}] Invalid XML from Plex") from e

        if root.tag != "MediaContainer":
            raise SourceInvalidResponse(f"[{self.name}] MediaContainer missing")

        sessions: List[Dict[str, Any]] = []
        for node in root:
            # sessionKey est sur le node (Video/Track/Episode)
            session_key = node.attrib.get("sessionKey") or node.attrib.get("key")

            user = node.find("User")
            username = user.attrib.get("title") if user is not None else None

            # la vraie sessionId (celle attendue par terminate) est dans <Session id="...">
            session_id = None
            sess = node.find("Session")
            if sess is not None:
                session_id = sess.attrib.get("id")
            if not session_id:
                session_id = node.attrib.get("sessionId")

            sessions.append({
                "username": username,
                "session_id": session_id,
                "session_key": session_key,
            })

        return sessions

    def terminate(self, session_id: str, session_key: str, message: str) -> str:
        params = {"sessionId": session_id}
        if message:
            params["reason"] = message

        # GET puis POST (compat selon versions de PMS) : uniquement si le GET est refusé
        # comme route inconnue, sinon on risquerait un double terminate
        try:
            r = self._request("GET", "/status/sessions/terminate", error_cls=TerminationError, params=params)
        except TerminationError as e:
            if getattr(e, "status_code", None) not in (404, 405):
                raise
            r = self._request("POST", "/status/sessions/terminate", error_cls=TerminationError, params=params)
        return r.text

    def check(self) -> Dict[str, Any]:
        session = requests.Session()
        plex = PlexServer(self._base_url(), self._credential(), session=session, timeout=self.timeout)
        return {
            "status": "up",
            "name": plex.friendlyName,
            "machine_id": plex.machineIdentifier,
            "version": plex.version,
        }
