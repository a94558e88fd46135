import httpx
import pytest

from ablycli.core.errors import ControlApiError
from ablycli.services.control.api import ControlApi, stats_params


def _api(handler, requests):
    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return ControlApi("secret-token", control_host="control.test", client=client), client


async def test_app_stats_request_shape():
    requests = []
    api, client = _api(
        lambda request: httpx.Response(200, json=[{"intervalId": "2024-01-01:10:00"}]),
        requests,
    )

    stats = await api.get_app_stats("app1", start=1000, end=2000, unit="minute", limit=5)

    assert stats == [{"intervalId": "2024-01-01:10:00"}]
    request = requests[0]
    assert request.url.host == "control.test"
    assert request.url.path == "/v1/apps/app1/stats"
    assert dict(request.url.params) == {
        "start": "1000",
        "end": "2000",
        "unit": "minute",
        "limit": "5",
    }
    assert request.headers["Authorization"] == "Bearer secret-token"

    await api.aclose()
    assert not client.is_closed
    await client.aclose()


async def test_account_stats_resolves_account_once():
    requests = []

    def handler(request):
        if request.url.path == "/v1/me":
            return httpx.Response(200, json={"account": {"id": "acc-9"}, "user": {}})
        return httpx.Response(200, json=[])

    api, client = _api(handler, requests)

    await api.get_account_stats(unit="hour")
    await api.get_account_stats(unit="hour")

    paths = [r.url.path for r in requests]
    assert paths == ["/v1/me", "/v1/accounts/acc-9/stats", "/v1/accounts/acc-9/stats"]
    await client.aclose()


async def test_non_success_status_raises():
    api, client = _api(lambda request: httpx.Response(401, text="token revoked"), [])

    with pytest.raises(ControlApiError) as info:
        await api.get_me()

    assert info.value.status == 401
    assert "token revoked" in str(info.value)
    await client.aclose()


async def test_no_content_returns_empty_dict():
    api, client = _api(lambda request: httpx.Response(204), [])
    assert await api.get_me() == {}
    await client.aclose()


async def test_transport_error_raises_control_api_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    api, client = _api(handler, [])
    with pytest.raises(ControlApiError) as info:
        await api.get_me()

    assert info.value.status == 0
    await client.aclose()


async def test_owned_client_is_closed():
    api = ControlApi("token")
    assert api.base_url == "https://control.ably.net/v1"
    await api.aclose()
    assert api._client.is_closed


def test_stats_params_skips_empty_values():
    assert stats_params() == {}
    assert stats_params(unit="day", limit=0) == {"unit": "day"}
