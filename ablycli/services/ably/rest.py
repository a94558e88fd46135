"""Ably REST client for app-level stats (authenticated with the app key)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ably import AblyRest
from ably.util.exceptions import AblyException

from ablycli.core.errors import RestApiError
from ablycli.shared.config.cli import Credentials
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.ably.rest")


def build_rest(credentials: Credentials, **overrides: Any) -> AblyRest:
    credentials.require_realtime_auth()

    options: Dict[str, Any] = {}
    if credentials.token:
        options["token"] = credentials.token
    else:
        options["key"] = credentials.api_key
    options.update(overrides)
    return AblyRest(**options)


def stats_to_dict(stats: Any) -> Dict[str, Any]:
    """SDK Stats object -> the camelCase shape the Control API returns."""
    if isinstance(stats, dict):
        return dict(stats)
    return {
        "intervalId": getattr(stats, "interval_id", None),
        "unit": getattr(stats, "unit", None),
        "entries": getattr(stats, "entries", None) or {},
        "inProgress": getattr(stats, "in_progress", None),
        "appId": getattr(stats, "app_id", None),
    }


class RestStats:
    """
    Stats fetcher over an AblyRest client, newest interval first.
    Same call shape as ControlApi.get_app_stats so the stats commands and
    the poller can use either.
    """

    def __init__(self, rest: Any):
        self._rest = rest

    async def get_stats(
        self,
        *,
        start: Optional[int] = None,
        end: Optional[int] = None,
        unit: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            result = await self._rest.stats(
                direction="backwards",
                start=start,
                end=end,
                unit=unit,
                limit=limit,
            )
        except AblyException as e:
            # Also covers parameters the SDK rejects before sending
            raise RestApiError(e.status_code, e.message) from e

        items = list(getattr(result, "items", None) or [])
        log.debug(f"REST stats returned {len(items)} interval(s)")
        return [stats_to_dict(item) for item in items]

    async def aclose(self) -> None:
        await self._rest.close()


__all__ = ["RestStats", "build_rest", "stats_to_dict"]
