from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping

from session_killer.core.monitoring.session_registry import UserSessions


class Verdict(str, Enum):
    EXEMPT = "exempt"
    WITHIN_LIMIT = "within-limit"
    VIOLATING = "violating"


class StreamPolicy:
    """
    max_streams_per_user, compté sur TOUS les serveurs.
    Borne stricte : max_streams sessions = OK, max_streams + 1 = violation.
    """

    def __init__(self, max_streams: int, exempt_usernames: Iterable[str] = ()) -> None:
        self.max_streams = int(max_streams)
        self.exempt: FrozenSet[str] = frozenset(exempt_usernames)

    def is_exempt(self, username: str) -> bool:
        # match exact, sensible à la casse
        return username in self.exempt

    def verdict(self, count: int, username: str) -> Verdict:
        if self.is_exempt(username):
            return Verdict.EXEMPT
        if count > self.max_streams:
            return Verdict.VIOLATING
        return Verdict.WITHIN_LIMIT

    def evaluate(self, aggregation: Mapping[str, UserSessions]) -> Dict[str, Verdict]:
        return {username: self.verdict(us.count, username) for username, us in aggregation.items()}


def violators(verdicts: Mapping[str, Verdict]) -> List[str]:
    return sorted(u for u, v in verdicts.items() if v is Verdict.VIOLATING)
