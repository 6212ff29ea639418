"""Tests for tasks_engine.Scheduler."""
from __future__ import annotations

import threading
import time
from unittest import mock

from conftest import session

from session_killer.config import Config
from session_killer.core.providers.base import ServerConfig
from session_killer.core.providers.tautulli import TautulliProvider
from session_killer.tasks_engine import Scheduler, SchedulerState, build_sources


def _config(**kw):
    kw.setdefault("poll_interval_seconds", 60)
    return Config(**kw)


def test_build_sources_uses_backend_types():
    cfg = _config(backends=(
        ServerConfig(id=1, name="Server 1", type="tautulli", endpoint="http://a/api/v2", credential="k"),
    ))
    sources = build_sources(cfg)
    assert len(sources) == 1
    assert isinstance(sources[0], TautulliProvider)


def test_unconfigured_sources_are_skipped(make_source):
    configured = make_source([session("alice", "a1")])
    empty = make_source([session("bob", "b1")], endpoint="")

    report = Scheduler(_config(), sources=[configured, empty]).run_once()

    assert configured.fetch_calls == 1
    assert empty.fetch_calls == 0
    assert report.servers == 1
    assert report.errors == []


def test_each_cycle_starts_from_scratch(make_source):
    src = make_source([session("alice", "a1"), session("alice", "a2")])
    scheduler = Scheduler(_config(), sources=[src])

    assert scheduler.run_once().user_counts == {"alice": 2}
    src.sessions = [session("alice", "a3")]
    second = scheduler.run_once()

    assert second.user_counts == {"alice": 1}
    assert second.cycle_id == 2
    assert scheduler.state is SchedulerState.IDLE


def test_cycle_crash_does_not_escape(make_source):
    scheduler = Scheduler(_config(), sources=[make_source()])

    with mock.patch("session_killer.tasks_engine.run_cycle", side_effect=RuntimeError("bug")):
        report = scheduler.run_once()

    assert report.cycle_id == 1
    assert scheduler.state is SchedulerState.IDLE


def test_run_forever_exits_on_stop_during_idle(make_source):
    src = make_source([session("alice", "a1")])
    scheduler = Scheduler(_config(poll_interval_seconds=3600), sources=[src])

    t = threading.Thread(target=scheduler.run_forever)
    t.start()
    # attend la fin du premier cycle (passage en IDLE) puis demande l'arrêt
    for _ in range(500):
        if src.fetch_calls:
            break
        threading.Event().wait(0.01)
    scheduler.stop()
    t.join(timeout=5)

    assert not t.is_alive()
    assert src.fetch_calls == 1


def test_stop_before_start_runs_no_cycle(make_source):
    src = make_source([session("alice", "a1")])
    scheduler = Scheduler(_config(), sources=[src])
    scheduler.stop(signum=15)

    scheduler.run_forever()

    assert src.fetch_calls == 0


def test_signal_handlers_installed(make_source):
    scheduler = Scheduler(_config(), sources=[])
    with mock.patch("session_killer.tasks_engine.signal.signal") as sig:
        scheduler.install_signal_handlers()
    assert sig.call_count == 2


def test_stop_during_fetch_finishes_cycle_then_exits(make_source):
    scheduler = None

    def stop_now(_source):
        scheduler.stop(signum=15)

    src = make_source([session("alice", "a1"), session("alice", "a2"), session("alice", "a3")],
                      on_fetch=stop_now)
    scheduler = Scheduler(_config(poll_interval_seconds=3600), sources=[src])

    started = time.monotonic()
    scheduler.run_forever()

    assert time.monotonic() - started < 5
    assert src.fetch_calls == 1
    # le cycle en cours va jusqu'au bout (terminaisons comprises)
    assert sorted(t[0] for t in src.terminated) == ["a1", "a2", "a3"]
    assert scheduler.state is SchedulerState.IDLE


def test_broken_kill_message_does_not_block_enforcement(make_source):
    src = make_source([session("alice", "a1"), session("alice", "a2"), session("alice", "a3")])
    cfg = _config(kill_message="Limit {max_streams[0]} for {username}")

    report = Scheduler(cfg, sources=[src]).run_once()

    assert report.user_counts == {"alice": 3}
    assert sorted(t[0] for t in src.terminated) == ["a1", "a2", "a3"]
    assert all(o.ok for o in report.outcomes)
