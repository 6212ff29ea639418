"""session-killer

Usage:
  session-killer --config /config/session_killer.json
  session-killer --once        # un seul cycle puis sortie
  session-killer --check       # sonde les serveurs puis sortie

Tourne indéfiniment ; SIGTERM / SIGINT = arrêt propre (code 0).
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from session_killer.config import ConfigError, load_config
from session_killer.logging_utils import configure_logging, get_logger
from session_killer.tasks.check_servers import check_servers
from session_killer.tasks_engine import Scheduler

logger = get_logger("main")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="session-killer")
    ap.add_argument("--config", default=None, help="JSON config file (defaults to SESSION_KILLER_CONFIG env)")
    ap.add_argument("--once", action="store_true", help="Run a single enforcement cycle and exit")
    ap.add_argument("--check", action="store_true", help="Probe configured servers and exit")
    ap.add_argument("--debug", action="store_true", help="Verbose logs, secrets not redacted")
    args = ap.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"session-killer: configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_dir, debug=(config.debug or args.debug))

    scheduler = Scheduler(config)

    if args.check:
        check_servers(scheduler.sources)
        return 0

    if args.once:
        scheduler.run_once()
        return 0

    check_servers(scheduler.sources)
    scheduler.install_signal_handlers()
    scheduler.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
