from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from session_killer.core.providers.base import ServerConfig

SUPPORTED_TYPES = ("tautulli", "plex", "jellyfin")

DEFAULT_KILL_MESSAGE = (
    "Too Many Streaming Sessions For USER {username} between all PLEX servers! "
    "Only {max_streams} are allowed at a time!"
)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    poll_interval_seconds: int = 60
    max_streams_per_user: int = 2
    exempt_usernames: FrozenSet[str] = field(default_factory=frozenset)
    backends: Tuple[ServerConfig, ...] = ()
    kill_message: str = DEFAULT_KILL_MESSAGE
    request_timeout_seconds: int = 10
    max_workers: int = 8
    log_dir: Optional[str] = None
    debug: bool = False


def _to_int(value: Any, name: str, minimum: int) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer (got {value!r})") from None
    if out < minimum:
        raise ConfigError(f"{name} must be >= {minimum} (got {out})")
    return out


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _parse_exempt(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    # Comparaison exacte (sensible à la casse) : les noms de la liste sont gardés tels quels.
    # Seule la forme "a, b" (variable d'environnement) est découpée et nettoyée.
    if isinstance(value, str):
        return frozenset(x.strip() for x in value.split(",") if x.strip())
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(x) for x in value if str(x))
    raise ConfigError("exempt_usernames must be a list of strings")


def _parse_backends(value: Any) -> Tuple[ServerConfig, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError("backends must be a list")

    out: List[ServerConfig] = []
    for idx, raw in enumerate(value, start=1):
        if not isinstance(raw, dict):
            raise ConfigError(f"backends[{idx - 1}] must be an object")

        server_type = str(raw.get("type") or "tautulli").strip().lower()
        if server_type not in SUPPORTED_TYPES:
            raise ConfigError(f"backends[{idx - 1}]: unsupported type '{server_type}'")

        out.append(ServerConfig(
            id=idx,
            name=str(raw.get("name") or f"Server {idx}"),
            type=server_type,
            endpoint=str(raw.get("endpoint") or "").strip(),
            credential=str(raw.get("credential") or "").strip(),
        ))
    return tuple(out)


def _parse_kill_message(value: Any) -> str:
    template = str(value or DEFAULT_KILL_MESSAGE)
    # Rendu à blanc : un template invalide est refusé au démarrage, pas au premier kill
    try:
        template.format(username="someone", max_streams=2)
    except Exception as e:
        raise ConfigError(f"kill_message template invalid: {type(e).__name__}: {e}") from None
    return template


def _read_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"config file {path} is not valid JSON: {e}") from None
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"config file {path} cannot be read: {e}") from None

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Fichier JSON (SESSION_KILLER_CONFIG ou --config) + surcharges par variables
    d'environnement. Lève ConfigError si une valeur est invalide.
    """
    env = os.environ if environ is None else environ

    path = path or env.get("SESSION_KILLER_CONFIG")
    data: Dict[str, Any] = _read_file(path) if path else {}

    overrides = {
        "SESSION_KILLER_POLL_INTERVAL": "poll_interval_seconds",
        "SESSION_KILLER_MAX_STREAMS": "max_streams_per_user",
        "SESSION_KILLER_EXEMPT_USERS": "exempt_usernames",
        "SESSION_KILLER_LOG_DIR": "log_dir",
        "SESSION_KILLER_DEBUG": "debug",
    }
    for env_name, key in overrides.items():
        if env.get(env_name) not in (None, ""):
            data[key] = env[env_name]

    kill_message = _parse_kill_message(data.get("kill_message"))

    return Config(
        poll_interval_seconds=_to_int(data.get("poll_interval_seconds", 60), "poll_interval_seconds", 1),
        max_streams_per_user=_to_int(data.get("max_streams_per_user", 2), "max_streams_per_user", 0),
        exempt_usernames=_parse_exempt(data.get("exempt_usernames")),
        backends=_parse_backends(data.get("backends")),
        kill_message=kill_message,
        request_timeout_seconds=_to_int(data.get("request_timeout_seconds", 10), "request_timeout_seconds", 1),
        max_workers=_to_int(data.get("max_workers", 8), "max_workers", 1),
        log_dir=(str(data["log_dir"]) if data.get("log_dir") else None),
        debug=_to_bool(data.get("debug", False)),
    )
