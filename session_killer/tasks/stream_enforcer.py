from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from session_killer.core.enforcement.policy import StreamPolicy, Verdict, violators
from session_killer.core.enforcement.terminator import TerminationCoordinator, TerminationOutcome
from session_killer.core.monitoring.collector import collect_sessions
from session_killer.core.monitoring.session_registry import SessionRegistry
from session_killer.core.providers.base import BaseProvider
from session_killer.logging_utils import get_logger

logger = get_logger("stream_enforcer")


@dataclass
class CycleReport:
    cycle_id: int
    servers: int = 0
    errors: List[dict] = field(default_factory=list)
    sessions_seen: int = 0
    duplicates: int = 0
    user_counts: Dict[str, int] = field(default_factory=dict)
    verdicts: Dict[str, Verdict] = field(default_factory=dict)
    outcomes: List[TerminationOutcome] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def terminated(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)


def run_cycle(
    cycle_id: int,
    sources: Sequence[BaseProvider],
    policy: StreamPolicy,
    coordinator: TerminationCoordinator,
    max_workers: int = 8,
) -> CycleReport:
    """
    Un cycle complet : collecte -> dédoublonnage -> agrégation -> décision -> coupure.
    Le registre est local au cycle : rien ne survit au return.
    """
    started = time.monotonic()
    report = CycleReport(cycle_id=cycle_id)

    logger.info(f"[CYCLE {cycle_id}] Starting multi-server check...")

    # 1) collecte (parallèle, join complet avant finalize)
    registry = SessionRegistry()
    collected = collect_sessions(sources, registry, max_workers=max_workers)
    report.servers = int(collected["servers"])
    report.errors = list(collected["errors"])
    report.sessions_seen = int(collected["sessions_seen"])

    # 2) agrégation par utilisateur
    aggregation = registry.finalize()
    report.duplicates = registry.duplicates
    report.user_counts = {u: us.count for u, us in aggregation.items()}

    if not aggregation:
        logger.info(f"[CYCLE {cycle_id}] No active sessions found.")
        report.duration_s = time.monotonic() - started
        return report

    if registry.duplicates:
        logger.info(f"[CYCLE {cycle_id}] Dropped {registry.duplicates} duplicate session record(s).")

    # 3) décision
    report.verdicts = policy.evaluate(aggregation)

    logger.info(f"[CYCLE {cycle_id}] User session counts:")
    for username in sorted(aggregation):
        marker = " [EXEMPT]" if report.verdicts[username] is Verdict.EXEMPT else ""
        logger.info(f"   {username}: {aggregation[username].count} session(s){marker}")

    for username in sorted(aggregation):
        if report.verdicts[username] is Verdict.EXEMPT:
            logger.info(
                f"USER {username} is exempt from the stream limit "
                f"({aggregation[username].count} active streams)"
            )

    # 4) coupure : TOUTES les sessions des utilisateurs en violation
    for username in violators(report.verdicts):
        user_sessions = aggregation[username]
        logger.warning(
            f"USER {username} has exceeded the stream limit! "
            f"({user_sessions.count}/{policy.max_streams})"
        )
        report.outcomes.extend(coordinator.terminate(username, user_sessions.sessions))

    report.duration_s = time.monotonic() - started
    return report
