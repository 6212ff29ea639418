from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from session_killer.core.providers.base import SessionRecord


@dataclass
class UserSessions:
    username: str
    sessions: List[SessionRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.sessions)


class SessionRegistry:
    """
    Accumulateur d'UN cycle : une instance neuve par cycle, jamais réutilisée.

    ingest() empile sans dédoublonner ; finalize() dédoublonne par
    (username, session_id), le premier vu gagne, et agrège par utilisateur.
    """

    def __init__(self) -> None:
        self._records: List[SessionRecord] = []
        self._raw_count = 0
        self._duplicates = 0
        self._aggregation: Optional[Dict[str, UserSessions]] = None

    def ingest(self, records: Iterable[SessionRecord]) -> int:
        added = 0
        for rec in records:
            self._raw_count += 1
            # username vide / absent / blanc => jamais agrégé
            if not rec.username or not rec.username.strip():
                continue
            self._records.append(rec)
            added += 1

        if added:
            self._aggregation = None
        return added

    def finalize(self) -> Dict[str, UserSessions]:
        if self._aggregation is not None:
            return self._snapshot(self._aggregation)

        seen: Set[Tuple[str, str]] = set()
        duplicates = 0
        out: Dict[str, UserSessions] = {}

        for rec in self._records:
            if rec.key in seen:
                duplicates += 1
                continue
            seen.add(rec.key)
            out.setdefault(rec.username, UserSessions(rec.username)).sessions.append(rec)

        self._duplicates = duplicates
        self._aggregation = out
        return self._snapshot(out)

    @staticmethod
    def _snapshot(agg: Dict[str, UserSessions]) -> Dict[str, UserSessions]:
        # copie : un appelant qui modifie le résultat ne corrompt pas le registre
        return {u: UserSessions(u, list(us.sessions)) for u, us in agg.items()}

    @property
    def raw_count(self) -> int:
        """Records reçus (avant filtrage et dédoublonnage)."""
        return self._raw_count

    @property
    def duplicates(self) -> int:
        """Doublons écartés au dernier finalize()."""
        return self._duplicates
