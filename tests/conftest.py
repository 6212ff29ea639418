"""Shared pytest fixtures."""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import pytest

from session_killer.core.providers.base import (
    BaseProvider,
    ServerConfig,
    SourceError,
    TerminationError,
)


class FakeProvider(BaseProvider):
    """In-memory source: scripted sessions per cycle, records terminate calls."""

    provider_name = "fake"

    def __init__(self, server: ServerConfig, sessions=None, error: Optional[SourceError] = None,
                 fail_terminate: Optional[set] = None, on_fetch=None) -> None:
        super().__init__(server)
        self.sessions: List[Dict[str, Any]] = list(sessions or [])
        self.error = error
        self.fail_terminate = set(fail_terminate or ())
        self.on_fetch = on_fetch
        self.fetch_calls = 0
        self.terminated: List[tuple] = []
        self._lock = threading.Lock()

    def get_active_sessions(self):
        self.fetch_calls += 1
        if self.on_fetch is not None:
            self.on_fetch(self)
        if self.error is not None:
            raise self.error
        return list(self.sessions)

    def terminate(self, session_id, session_key, message):
        with self._lock:
            self.terminated.append((session_id, session_key, message))
        if session_id in self.fail_terminate:
            raise TerminationError(f"terminate {session_id} -> 500")
        return '{"response": {"result": "success"}}'

    def check(self):
        return {"status": "up", "name": self.server.name}


def session(username, session_id, session_key=None):
    return {
        "username": username,
        "session_id": session_id,
        "session_key": session_key if session_key is not None else f"key-{session_id}",
    }


@pytest.fixture
def make_source():
    counter = {"n": 0}

    def _make(sessions=None, error=None, fail_terminate=None, endpoint=None, credential="secret", on_fetch=None):
        counter["n"] += 1
        n = counter["n"]
        server = ServerConfig(
            id=n,
            name=f"Server {n}",
            type="fake",
            endpoint=endpoint if endpoint is not None else f"http://10.0.0.{n}:8181/api/v2",
            credential=credential,
        )
        return FakeProvider(server, sessions=sessions, error=error, fail_terminate=fail_terminate,
                            on_fetch=on_fetch)

    return _make


@pytest.fixture
def tautulli_server() -> ServerConfig:
    return ServerConfig(id=1, name="Server 1", type="tautulli",
                        endpoint="http://10.0.0.10:8181/api/v2", credential="abc123")
