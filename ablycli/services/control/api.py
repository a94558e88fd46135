"""
Control API client (stats subset).

Endpoints:
  GET /me
  GET /apps/{appId}/stats
  GET /accounts/{accountId}/stats
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ablycli.core.errors import ControlApiError
from ablycli.shared.config.cli import DEFAULT_CONTROL_HOST
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.control.api")

REQUEST_TIMEOUT_SECONDS = 10.0


def stats_params(
    *,
    start: Optional[int] = None,
    end: Optional[int] = None,
    unit: Optional[str] = None,
    limit: Optional[int] = None,
    by: Optional[str] = None,
) -> Dict[str, str]:
    params: Dict[str, str] = {}
    if start:
        params["start"] = str(start)
    if end:
        params["end"] = str(end)
    if by:
        params["by"] = by
    if limit:
        params["limit"] = str(limit)
    if unit:
        params["unit"] = unit
    return params


class ControlApi:
    """
    Thin async wrapper over the Control API.

    Accepts a shared httpx.AsyncClient; otherwise owns one and closes it
    in aclose().
    """

    def __init__(
        self,
        access_token: str,
        *,
        control_host: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.control_host = control_host or DEFAULT_CONTROL_HOST
        self.base_url = f"https://{self.control_host}/v1"

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS),
        )
        self._headers = headers
        self._client_owned = client is None
        self._account_id: Optional[str] = None

    # ------------------------------------------------------------------

    async def _request(
        self,
        path: str,
        *,
        method: str = "GET",
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        log.debug(f"{method} {url} params={params or {}}")

        try:
            resp = await self._client.request(
                method, url, params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise ControlApiError(0, str(e) or e.__class__.__name__) from e

        if not resp.is_success:
            raise ControlApiError(
                resp.status_code,
                f"{resp.reason_phrase} - {resp.text}".strip(" -"),
            )

        if resp.status_code == 204:
            return {}

        return resp.json()

    # ------------------------------------------------------------------

    async def get_me(self) -> Dict[str, Any]:
        return await self._request("/me")

    async def account_id(self) -> str:
        """Account id from /me, fetched once per client."""
        if self._account_id is None:
            me = await self.get_me()
            account = me.get("account") or {}
            if not account.get("id"):
                raise ControlApiError(200, "Response from /me has no account id")
            self._account_id = str(account["id"])
        return self._account_id

    async def get_app_stats(self, app_id: str, **options: Any) -> List[Dict[str, Any]]:
        return await self._request(
            f"/apps/{app_id}/stats", params=stats_params(**options)
        )

    async def get_account_stats(self, **options: Any) -> List[Dict[str, Any]]:
        account_id = await self.account_id()
        return await self._request(
            f"/accounts/{account_id}/stats", params=stats_params(**options)
        )

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()


__all__ = ["ControlApi", "stats_params"]
