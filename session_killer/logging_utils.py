import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

# -------------------------------------------------------------------
# CONFIG
# -------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME = "session_killer.log"
LOG_MAX_BYTES = 5_000_000   # 5 Mo
LOG_BACKUP_COUNT = 5

_DEBUG_MODE = {"value": False}


# -------------------------------------------------------------------
# LOGGER ROOT
# -------------------------------------------------------------------

logger = logging.getLogger("session_killer")
logger.setLevel(logging.DEBUG)  # On capture tout, filtrage via handlers
logger.propagate = False  # Pas de duplication via le root logger


def is_debug_mode_enabled() -> bool:
    return bool(_DEBUG_MODE["value"])


def set_debug_mode(enabled: bool) -> None:
    _DEBUG_MODE["value"] = bool(enabled)


# -------------------------------------------------------------------
# LOG FILTER (ANONYMISATION)
# -------------------------------------------------------------------

class AnonymizeFilter(logging.Filter):
    """
    - Masque les clés API Tautulli / tokens Plex / api_key Jellyfin
    - Masque Authorization / Bearer
    - Désactivé automatiquement si debug_mode = 1
    """

    TOKEN_REGEX = re.compile(
        r'(?i)\b(apikey|api_key|x-plex-token|x-emby-token|token|authorization|bearer)\b(\s*[:=]\s*)[a-z0-9\-._]+'
    )

    def filter(self, record: logging.LogRecord) -> bool:
        # Debug actif -> logs NON anonymisés
        if is_debug_mode_enabled():
            return True

        msg = record.getMessage()

        msg = self.TOKEN_REGEX.sub(
            lambda m: f"{m.group(1)}=***REDACTED***",
            msg
        )

        record.msg = msg
        record.args = ()

        return True


def _has_handler(kind: type, target: Optional[str] = None) -> bool:
    for h in logger.handlers:
        if type(h) is not kind:
            continue
        if target is None or getattr(h, "baseFilename", None) == target:
            return True
    return False


def configure_logging(log_dir: Optional[str] = None, debug: bool = False) -> None:
    """
    Installe les handlers (stdout + fichier rotatif optionnel).
    Idempotent : un second appel ne duplique pas les handlers.
    """
    set_debug_mode(debug)
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)

    if not _has_handler(logging.StreamHandler):
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        stream.addFilter(AnonymizeFilter())
        logger.addHandler(stream)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.abspath(os.path.join(log_dir, LOG_FILE_NAME))
        if not _has_handler(RotatingFileHandler, log_file):
            handler = RotatingFileHandler(
                log_file,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8"
            )
            handler.setFormatter(formatter)
            handler.addFilter(AnonymizeFilter())
            logger.addHandler(handler)

    for h in logger.handlers:
        h.setLevel(level)


# -------------------------------------------------------------------
# PUBLIC API
# -------------------------------------------------------------------

def get_logger(name: str):
    """
    Retourne un logger enfant :
    ex: session_killer.stream_enforcer, session_killer.tasks_engine
    """
    return logger.getChild(name)
