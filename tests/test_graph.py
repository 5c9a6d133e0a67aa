import json
import logging

import pytest
import requests

from intune_cleanup import throttle
from intune_cleanup.graph import (
    GRAPH_API_BASE,
    GraphRetry,
    GraphService,
    _error_message,
    acquire_token,
    build_http_session,
)
from intune_cleanup.service import ServiceAccessError, ServiceError, SetupError
from intune_cleanup.throttle import WriteRateLimiter


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(body) if body is not None else ""
        self.content = self.text.encode()

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeHttp:
    """Stands in for requests.Session; answers requests from a queue."""

    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, params=None, json=None, timeout=None):
        self.requests.append((method, url, params, json))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, data=None, timeout=None):
        self.requests.append(("POST", url, data, None))
        return self.responses.pop(0)


@pytest.fixture
def limiter(monkeypatch):
    monkeypatch.setattr(throttle.time, "sleep", lambda _s: None)
    return WriteRateLimiter(logging.getLogger("test"), max_writes_before_pause=0, min_seconds_between_writes=0)


def test_list_follows_next_link(limiter):
    next_link = f"{GRAPH_API_BASE}/deviceManagement/managedDevices?$skiptoken=abc"
    http = FakeHttp(
        FakeResponse(body={"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": next_link}),
        FakeResponse(body={"value": [{"id": "3"}]}),
    )
    svc = GraphService("tok", limiter, http=http)
    pages = []

    items = svc.list_managed_devices(["id", "deviceName"], on_page=pages.append)

    assert [i["id"] for i in items] == ["1", "2", "3"]
    assert pages == [2, 3]
    first, second = http.requests
    assert first[1] == f"{GRAPH_API_BASE}/deviceManagement/managedDevices"
    assert first[2]["$select"] == "id,deviceName"
    assert second[1] == next_link
    assert second[2] is None
    assert http.headers["Authorization"] == "Bearer tok"


def test_forbidden_maps_to_access_error(limiter):
    http = FakeHttp(FakeResponse(403, {"error": {"code": "Authorization_RequestDenied", "message": "Insufficient privileges"}}))
    svc = GraphService("tok", limiter, http=http)

    with pytest.raises(ServiceAccessError) as exc:
        svc.list_group_members("g1")

    assert exc.value.status_code == 403
    assert str(exc.value) == "HTTP 403: Insufficient privileges"


def test_other_errors_map_to_service_error(limiter):
    http = FakeHttp(FakeResponse(400, {"error": {"message": "Device is not in a state that allows retire"}}))
    svc = GraphService("tok", limiter, http=http)

    with pytest.raises(ServiceError) as exc:
        svc.retire_managed_device("d1")

    assert not isinstance(exc.value, ServiceAccessError)
    assert "allows retire" in str(exc.value)


def test_transport_failure_is_a_service_error(limiter):
    http = FakeHttp(requests.ConnectionError("connection reset"))
    svc = GraphService("tok", limiter, http=http)
    with pytest.raises(ServiceError):
        svc.delete_group("g1")


def test_writes_hit_the_right_endpoints_and_count(limiter):
    http = FakeHttp(*[FakeResponse(204) for _ in range(6)])
    svc = GraphService("tok", limiter, http=http)

    svc.delete_managed_device("d1")
    svc.retire_managed_device("d2")
    svc.wipe_managed_device("d3", {"keepUserData": False})
    svc.delete_group("g1")
    svc.rename_group("g2", "new-name")
    svc.delete_directory_device("o1")

    assert [(m, u.replace(GRAPH_API_BASE, ""), j) for m, u, _p, j in http.requests] == [
        ("DELETE", "/deviceManagement/managedDevices/d1", None),
        ("POST", "/deviceManagement/managedDevices/d2/retire", None),
        ("POST", "/deviceManagement/managedDevices/d3/wipe", {"keepUserData": False}),
        ("DELETE", "/groups/g1", None),
        ("PATCH", "/groups/g2", {"displayName": "new-name"}),
        ("DELETE", "/devices/o1", None),
    ]
    assert limiter.write_count == 6


def test_reads_are_not_counted_as_writes(limiter):
    http = FakeHttp(FakeResponse(body={"value": []}))
    svc = GraphService("tok", limiter, http=http)
    svc.list_groups(["id"])
    assert limiter.write_count == 0


def test_find_directory_device(limiter):
    entry = {"id": "obj-1", "deviceId": "X", "onPremisesSyncEnabled": True}
    http = FakeHttp(FakeResponse(body={"value": [entry]}), FakeResponse(body={"value": []}))
    svc = GraphService("tok", limiter, http=http)

    assert svc.find_directory_device("X") == entry
    assert svc.find_directory_device("Y") is None
    assert http.requests[0][2]["$filter"] == "deviceId eq 'X'"


def test_acquire_token():
    http = FakeHttp(FakeResponse(body={"access_token": "abc", "token_type": "Bearer"}))
    assert acquire_token(http, "contoso", "cid", "secret") == "abc"
    method, url, data, _ = http.requests[0]
    assert url == "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"
    assert data["grant_type"] == "client_credentials"


def test_acquire_token_failure_is_setup_error():
    http = FakeHttp(FakeResponse(401, {"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret"}))
    with pytest.raises(SetupError, match="Invalid client secret"):
        acquire_token(http, "contoso", "cid", "wrong")


def test_error_message_without_json_body():
    assert _error_message(FakeResponse(502, text="Bad Gateway")) == "HTTP 502: Bad Gateway"


def test_post_actions_are_only_retried_when_throttled():
    retry = build_http_session().get_adapter(GRAPH_API_BASE).max_retries
    assert isinstance(retry, GraphRetry)
    assert retry.is_retry("POST", 429)
    assert not retry.is_retry("POST", 502)
    assert not retry.is_retry("POST", 503)
    assert retry.is_retry("GET", 503)
    assert retry.is_retry("DELETE", 502)
    # the copy urllib3 makes for each later attempt keeps the same rules
    assert not retry.new(total=1).is_retry("POST", 500)
