from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

from session_killer.config import DEFAULT_KILL_MESSAGE
from session_killer.core.providers.base import SessionRecord, TerminationError
from session_killer.logging_utils import get_logger

logger = get_logger("enforcement.terminator")


@dataclass
class TerminationOutcome:
    server: str
    endpoint: str
    username: str
    session_id: str
    session_key: str
    ok: bool
    response: Optional[str] = None
    error: Optional[str] = None


def render_message(template: str, username: str, max_streams: int) -> str:
    try:
        return template.format(username=username, max_streams=max_streams)
    except Exception as e:
        logger.warning(f"kill_message template invalid ({type(e).__name__}: {e}), using default: {template!r}")
        return DEFAULT_KILL_MESSAGE.format(username=username, max_streams=max_streams)


class TerminationCoordinator:
    """
    Coupe TOUTES les sessions d'un utilisateur en violation.
    Chaque tentative est indépendante : un échec n'empêche pas les autres,
    pas de retry dans le cycle (le cycle suivant re-détectera).
    """

    def __init__(self, max_streams: int, message_template: str = DEFAULT_KILL_MESSAGE, max_workers: int = 8) -> None:
        self.max_streams = int(max_streams)
        self.message_template = message_template
        self.max_workers = max(1, int(max_workers))

    def _terminate_one(self, username: str, rec: SessionRecord, message: str) -> TerminationOutcome:
        src = rec.source
        outcome = TerminationOutcome(
            server=src.name,
            endpoint=src.server.endpoint,
            username=rec.username,
            session_id=rec.session_id,
            session_key=rec.session_key,
            ok=False,
        )

        logger.info(f"  Terminating session ID: {rec.session_id} on server: {src.name} ({src.server.endpoint})")
        try:
            outcome.response = src.terminate(rec.session_id, rec.session_key, message)
            outcome.ok = True
            logger.info(f"  Terminate response: {outcome.response}")
        except TerminationError as e:
            outcome.error = str(e)
            logger.error(
                f"  Terminate FAILED user={username} session_id={rec.session_id} "
                f"session_key={rec.session_key} server={src.name}: {e}"
            )
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.error(
                f"  Terminate FAILED user={username} session_id={rec.session_id} "
                f"session_key={rec.session_key} server={src.name}: {e}",
                exc_info=True,
            )
        return outcome

    def terminate(self, username: str, sessions: Sequence[SessionRecord]) -> List[TerminationOutcome]:
        if not sessions:
            return []

        logger.info(f"Terminating ALL sessions for user: {username}")
        message = render_message(self.message_template, username, self.max_streams)

        workers = min(self.max_workers, len(sessions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="session-killer-kill") as pool:
            futures = [pool.submit(self._terminate_one, username, rec, message) for rec in sessions]
            # join complet : le résumé du cycle doit refléter tous les résultats
            return [f.result() for f in futures]
