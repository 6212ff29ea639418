import signal
import threading
from enum import Enum
from typing import List, Optional, Sequence

from session_killer.config import Config
from session_killer.core.enforcement.policy import StreamPolicy
from session_killer.core.enforcement.terminator import TerminationCoordinator
from session_killer.core.providers.base import BaseProvider
from session_killer.core.providers.registry import get_provider
from session_killer.logging_utils import get_logger
from session_killer.tasks.stream_enforcer import CycleReport, run_cycle

logger = get_logger("tasks_engine")


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


def build_sources(config: Config) -> List[BaseProvider]:
    return [get_provider(b, timeout=config.request_timeout_seconds) for b in config.backends]


class Scheduler:
    """
    Boucle unique : POLLING (un cycle complet) -> IDLE (attente) -> POLLING ...
    Jamais deux cycles en même temps ; aucun état ne passe d'un cycle à l'autre.
    Seul un stop externe (signal) termine la boucle, pendant l'attente IDLE.
    """

    def __init__(
        self,
        config: Config,
        sources: Optional[Sequence[BaseProvider]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.sources: List[BaseProvider] = list(sources) if sources is not None else build_sources(config)
        self.policy = StreamPolicy(config.max_streams_per_user, config.exempt_usernames)
        self.coordinator = TerminationCoordinator(
            config.max_streams_per_user,
            message_template=config.kill_message,
            max_workers=config.max_workers,
        )
        self.stop_event = stop_event or threading.Event()
        self.state = SchedulerState.IDLE
        self.cycle_id = 0

    # -------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------

    def _active_sources(self) -> List[BaseProvider]:
        active = []
        for src in self.sources:
            if not src.server.is_configured:
                logger.debug(f"[{src.name}] not configured (empty endpoint/credential), skipped")
                continue
            active.append(src)
        return active

    def run_once(self) -> CycleReport:
        self.cycle_id += 1
        self.state = SchedulerState.POLLING

        try:
            report = run_cycle(
                self.cycle_id,
                self._active_sources(),
                self.policy,
                self.coordinator,
                max_workers=self.config.max_workers,
            )
        except Exception:
            # Aucun cycle ne doit tuer la boucle : on logge et on repasse IDLE
            logger.exception(f"[CYCLE {self.cycle_id}] unexpected failure")
            report = CycleReport(cycle_id=self.cycle_id)
        finally:
            self.state = SchedulerState.IDLE

        logger.info(
            f"[CYCLE {report.cycle_id}] done servers={report.servers} errors={len(report.errors)} "
            f"sessions_seen={report.sessions_seen} users={len(report.user_counts)} "
            f"terminated={report.terminated} failed={report.failed} duration={report.duration_s:.2f}s"
        )
        return report

    # -------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------

    def run_forever(self) -> None:
        interval = self.config.poll_interval_seconds
        logger.info(
            f"Scheduler started: interval={interval}s max_streams={self.policy.max_streams} "
            f"exempt={len(self.policy.exempt)} servers={len(self._active_sources())}/{len(self.sources)}"
        )

        while not self.stop_event.is_set():
            self.run_once()

            logger.info(f"Check complete. Waiting {interval} seconds for next run...")
            # wait() rend la main immédiatement si stop() est appelé pendant l'attente
            if self.stop_event.wait(interval):
                break

        logger.info("Scheduler stopped")

    def stop(self, signum=None, frame=None) -> None:
        if signum is not None:
            logger.info(f"Received signal {signum}, shutting down.")
        self.stop_event.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self.stop)
        signal.signal(signal.SIGINT, self.stop)
