from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Sequence

from session_killer.core.monitoring.session_registry import SessionRegistry
from session_killer.core.providers.base import BaseProvider, FetchResult
from session_killer.logging_utils import get_logger

logger = get_logger("monitoring.collector")


def _fetch_one(source: BaseProvider) -> FetchResult:
    logger.info(f"[{source.name}] Querying {source.provider_name} at {source.server.endpoint}")
    return source.fetch()


def collect_sessions(
    sources: Sequence[BaseProvider],
    registry: SessionRegistry,
    max_workers: int = 8,
) -> Dict[str, object]:
    """
    Interroge toutes les sources en parallèle, attend TOUTES les réponses
    (ou échecs), puis alimente le registre du cycle.
    Une source en échec contribue 0 session ; rien n'est levé.
    """
    report = {"servers": len(sources), "sessions_seen": 0, "errors": []}
    if not sources:
        return report

    workers = max(1, min(int(max_workers), len(sources)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="session-killer-fetch") as pool:
        # map() préserve l'ordre de configuration => ingestion déterministe
        results: List[FetchResult] = list(pool.map(_fetch_one, sources))

    for res in results:
        name = res.source.name

        if not res.ok:
            logger.warning(f"[{name}] WARNING: {type(res.error).__name__}: {res.error}. Skipping.")
            report["errors"].append({
                "server": name,
                "provider": res.source.provider_name,
                "error": type(res.error).__name__,
                "detail": str(res.error),
            })
            continue

        logger.info(f"[{name}] Found {len(res.records)} raw session object(s).")
        for rec in res.records:
            logger.debug(f"[{name}]    User: {rec.username}, Session ID: {rec.session_id}")

        report["sessions_seen"] += len(res.records)
        registry.ingest(res.records)

    return report
