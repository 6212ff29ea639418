from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests


@dataclass(frozen=True)
class ServerConfig:
    id: int
    name: str
    type: str              # 'tautulli' | 'plex' | 'jellyfin'
    endpoint: str
    credential: str        # apikey Tautulli / X-Plex-Token / api_key Jellyfin

    @property
    def is_configured(self) -> bool:
        # Endpoint ou credential vide = "serveur non configuré" (ignoré, pas une erreur)
        return bool(self.endpoint.strip()) and bool(self.credential.strip())


# -------------------------
# Errors
# -------------------------

class SourceError(Exception):
    """Echec d'une source pour ce cycle (n'affecte pas les autres sources)."""

    status_code = None  # code HTTP quand l'échec vient d'une réponse du serveur


class SourceUnreachable(SourceError):
    pass


class SourceInvalidResponse(SourceError):
    pass


class SourceEmptyCredential(SourceError):
    pass


class TerminationError(Exception):
    status_code = None


# -------------------------
# Records
# -------------------------

@dataclass(frozen=True)
class SessionRecord:
    username: str
    session_id: str
    session_key: str
    source: "BaseProvider" = field(repr=False)

    @property
    def key(self):
        return (self.username, self.session_id)


@dataclass
class FetchResult:
    source: "BaseProvider"
    records: List[SessionRecord] = field(default_factory=list)
    error: Optional[SourceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def classify_exception(e: BaseException) -> SourceError:
    """
    Convertit une exception inattendue en SourceError.
    On déroule la chaîne (__cause__ / __context__) : une vraie erreur réseau
    requests quelque part dedans => Unreachable, sinon InvalidResponse.
    """
    if isinstance(e, SourceError):
        return e

    def iter_chain(exc):
        seen = set()
        cur = exc
        while cur is not None and id(cur) not in seen:
            seen.add(id(cur))
            yield cur
            cur = getattr(cur, "__cause__", None) or getattr(cur, "__context__", None)

    chain = list(iter_chain(e))

    for exc in chain:
        if isinstance(exc, requests.exceptions.RequestException):
            err: SourceError = SourceUnreachable(str(e) or type(e).__name__)
            err.__cause__ = e
            return err

    err = SourceInvalidResponse(f"{type(e).__name__}: {e}")
    err.__cause__ = e
    return err


class BaseProvider:
    provider_name: str  # 'tautulli' | 'plex' | 'jellyfin'

    def __init__(self, server: ServerConfig, timeout: int = 10) -> None:
        self.server = server
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.server.name} {self.server.endpoint}>"

    @property
    def name(self) -> str:
        return self.server.name

    # -------------------------
    # HTTP
    # -------------------------

    def _base_url(self) -> str:
        b = self.server.endpoint.strip().rstrip("/")
        if not b:
            raise SourceEmptyCredential(f"[{self.name}] endpoint missing")
        if not (b.startswith("http://") or b.startswith("https://")):
            b = "http://" + b
        return b

    def _credential(self) -> str:
        token = self.server.credential.strip()
        if not token:
            raise SourceEmptyCredential(f"[{self.name}] credential missing")
        return token

    def _http(self, method: str, url: str, error_cls=SourceUnreachable, **kwargs) -> requests.Response:
        try:
            r = requests.request(method, url, timeout=self.timeout, **kwargs)
            # on veut une VRAIE réponse du serveur
            r.raise_for_status()
            return r
        except requests.exceptions.RequestException as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            err = error_cls(f"{method} {url} -> {code or type(e).__name__}")
            err.status_code = code
            raise err from e

    # -------------------------
    # Contract
    # -------------------------

    def get_active_sessions(self) -> List[Dict[str, Any]]:
        """
        Retourne une liste de sessions NORMALISÉES
        ({username, session_id, session_key}), pas le raw du provider.
        Peut lever SourceError.
        """
        raise NotImplementedError

    def terminate(self, session_id: str, session_key: str, message: str) -> str:
        """Termine une session ; retourne l'accusé brut. Lève TerminationError."""
        raise NotImplementedError

    def check(self) -> Dict[str, Any]:
        raise NotImplementedError

    def fetch(self) -> FetchResult:
        """Ne lève jamais : toute erreur devient FetchResult.error."""
        if not self.server.is_configured:
            return FetchResult(self, [], SourceEmptyCredential(f"[{self.name}] endpoint/credential missing"))

        try:
            raw_sessions = self.get_active_sessions()
            records = self._to_records(raw_sessions)
        except Exception as e:
            return FetchResult(self, [], classify_exception(e))

        return FetchResult(self, records, None)

    def _to_records(self, raw_sessions: List[Dict[str, Any]]) -> List[SessionRecord]:
        records: List[SessionRecord] = []
        for s in raw_sessions:
            username = s.get("username")
            username = "" if username is None else str(username)

            session_id = s.get("session_id")
            session_key = s.get("session_key")

            # Sans username la session sera écartée par le registre ;
            # avec username, les deux identifiants sont obligatoires.
            if username.strip() and (session_id in (None, "") or session_key in (None, "")):
                raise SourceInvalidResponse(
                    f"[{self.name}] session for user '{username}' lacks session_id/session_key"
                )

            records.append(SessionRecord(
                username=username,
                session_id="" if session_id is None else str(session_id),
                session_key="" if session_key is None else str(session_key),
                source=self,
            ))
        return records
