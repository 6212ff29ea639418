"""Tests for config module."""
from __future__ import annotations

import json

import pytest

from session_killer.config import DEFAULT_KILL_MESSAGE, ConfigError, load_config


def _write(tmp_path, data):
    p = tmp_path / "config.json"
    p.write_text(json.dumps(data))
    return str(p)


def test_defaults_without_file():
    cfg = load_config(environ={})
    assert cfg.poll_interval_seconds == 60
    assert cfg.max_streams_per_user == 2
    assert cfg.exempt_usernames == frozenset()
    assert cfg.backends == ()
    assert cfg.kill_message == DEFAULT_KILL_MESSAGE


def test_file_values_and_backend_normalization(tmp_path):
    path = _write(tmp_path, {
        "poll_interval_seconds": 30,
        "max_streams_per_user": 3,
        "exempt_usernames": ["User1", " User2 ", ""],
        "backends": [
            {"endpoint": "http://10.0.0.10:8181/api/v2", "credential": "k1"},
            {"type": "plex", "name": "Living room", "endpoint": "http://10.0.0.11:32400", "credential": "t"},
            {"endpoint": "", "credential": ""},
        ],
    })

    cfg = load_config(path, environ={})

    assert cfg.poll_interval_seconds == 30
    assert cfg.max_streams_per_user == 3
    assert cfg.exempt_usernames == frozenset({"User1", " User2 "})
    assert [b.name for b in cfg.backends] == ["Server 1", "Living room", "Server 3"]
    assert [b.type for b in cfg.backends] == ["tautulli", "plex", "tautulli"]
    assert [b.is_configured for b in cfg.backends] == [True, True, False]


def test_env_overrides_file(tmp_path):
    path = _write(tmp_path, {"max_streams_per_user": 3})
    cfg = load_config(path, environ={
        "SESSION_KILLER_MAX_STREAMS": "1",
        "SESSION_KILLER_EXEMPT_USERS": "alice,bob",
        "SESSION_KILLER_DEBUG": "1",
    })
    assert cfg.max_streams_per_user == 1
    assert cfg.exempt_usernames == frozenset({"alice", "bob"})
    assert cfg.debug is True


def test_config_path_from_env(tmp_path):
    path = _write(tmp_path, {"poll_interval_seconds": 5})
    assert load_config(environ={"SESSION_KILLER_CONFIG": path}).poll_interval_seconds == 5


@pytest.mark.parametrize("data", [
    {"max_streams_per_user": "two"},
    {"poll_interval_seconds": 0},
    {"max_streams_per_user": -1},
    {"backends": {"endpoint": "x"}},
    {"backends": [{"type": "emby", "endpoint": "x", "credential": "y"}]},
    {"exempt_usernames": 42},
    {"kill_message": "Limit {max_streams[0]} for {username}"},
    {"kill_message": "Limit {max_streams.x}"},
    {"kill_message": "Bye {nope}"},
    {"kill_message": "Unbalanced {username"},
])
def test_invalid_values_raise(tmp_path, data):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, data), environ={})


def test_missing_or_broken_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.json"), environ={})

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_config(str(bad), environ={})


def test_exempt_names_from_file_are_kept_verbatim(tmp_path):
    cfg = load_config(_write(tmp_path, {"exempt_usernames": [" Bob", "alice"]}), environ={})
    assert "Bob" not in cfg.exempt_usernames
    assert " Bob" in cfg.exempt_usernames
    assert "Alice" not in cfg.exempt_usernames


def test_custom_kill_message_accepted(tmp_path):
    cfg = load_config(_write(tmp_path, {"kill_message": "{username}: max {max_streams} streams"}), environ={})
    assert cfg.kill_message == "{username}: max {max_streams} streams"


def test_unreadable_config_path(tmp_path):
    # un répertoire à la place du fichier => OSError à l'ouverture
    with pytest.raises(ConfigError, match="cannot be read"):
        load_config(str(tmp_path), environ={})
