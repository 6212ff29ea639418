"""
check_servers.py
----------------
Sonde chaque backend configuré une fois (au démarrage ou via --check).
Jamais bloquant : un serveur DOWN est juste loggé, le cycle suivant
le traitera comme une source en échec.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from session_killer.core.providers.base import BaseProvider, classify_exception
from session_killer.logging_utils import get_logger

log = get_logger("check_servers")


def check_server(source: BaseProvider) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "server": source.name,
        "type": source.provider_name,
        "endpoint": source.server.endpoint,
    }

    if not source.server.is_configured:
        result["status"] = "skipped"
        return result

    try:
        info = source.check()
        result.update(info)
    except Exception as e:
        err = classify_exception(e)
        result["status"] = "down"
        result["error"] = f"{type(err).__name__}: {err}"

    return result


def check_servers(sources: Sequence[BaseProvider]) -> List[Dict[str, Any]]:
    log.info("=== CHECK SERVERS : DÉMARRAGE ===")

    if not sources:
        log.warning("Aucun serveur configuré.")
        return []

    results = []
    for source in sources:
        r = check_server(source)
        results.append(r)

        if r["status"] == "skipped":
            log.debug(f"[{r['server']}] not configured, skipped")
        elif r["status"] == "down":
            log.warning(f"[{r['server']}] DOWN ({r['type']} {r['endpoint']}) : {r.get('error')}")
        else:
            extra = " ".join(
                f"{k}={r[k]}" for k in ("name", "version", "message") if r.get(k)
            )
            log.info(f"[{r['server']}] {r['status'].upper()} ({r['type']} {r['endpoint']}) {extra}".rstrip())

    log.info("=== CHECK SERVERS : TERMINÉ ===")
    return results
