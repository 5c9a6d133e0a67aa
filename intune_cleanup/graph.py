"""
Microsoft Graph binding for the cleanup pipeline.

Client side:
- Acquires an app-only token (client credentials) for the chosen tenant
- Follows @odata.nextLink paging for every list call
- Retries throttled (429) and transient (5xx) responses with backoff
- Paces every mutating call through the WriteRateLimiter

Service side:
- Intune managed devices: /deviceManagement/managedDevices
- Entra ID directory devices and groups: /devices, /groups

Required application permissions:
- DeviceManagementManagedDevices.ReadWrite.All
- DeviceManagementManagedDevices.PrivilegedOperations.All (retire / wipe)
- Device.ReadWrite.All
- Group.ReadWrite.All
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .service import PageCallback, ServiceAccessError, ServiceError, SetupError
from .throttle import WriteRateLimiter

logger = logging.getLogger("intune_cleanup.graph")

TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

REQUEST_TIMEOUT = 60


class GraphRetry(Retry):
    """Retire / wipe POSTs are only replayed when Graph throttled them (429)."""

    def is_retry(self, method: str, status_code: int, has_retry_after: bool = False) -> bool:
        if method.upper() == "POST" and status_code != 429:
            return False
        return super().is_retry(method, status_code, has_retry_after)


def build_http_session() -> requests.Session:
    session = requests.Session()
    retry = GraphRetry(
        total=5,
        backoff_factor=2,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "POST", "PATCH", "DELETE"}),
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    session.mount("https://", HTTPAdapter(max_retries=retry))
    return session


def acquire_token(
    http: requests.Session, tenant_id: str, client_id: str, client_secret: str
) -> str:
    url = TOKEN_URL.format(tenant_id=tenant_id)
    payload = {
        "grant_type": "client_credentials",
        "client_id": client_id,
        "client_secret": client_secret,
        "scope": GRAPH_SCOPE,
    }
    try:
        resp = http.post(url, data=payload, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        raise SetupError(f"Could not reach the token endpoint for tenant {tenant_id}: {e}") from e

    if resp.status_code != 200:
        raise SetupError(f"Authentication failed for tenant {tenant_id}: {_error_message(resp)}")

    token = resp.json().get("access_token")
    if not token:
        raise SetupError("Token endpoint returned no access_token")
    return token


def _error_message(resp: requests.Response) -> str:
    """Graph error bodies look like {"error": {"code": ..., "message": ...}}."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text.strip()[:500]}"

    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        message = err.get("message") or err.get("code") or ""
        return f"HTTP {resp.status_code}: {message}"
    if isinstance(err, str):
        # token endpoint style: {"error": "invalid_client", "error_description": "..."}
        return f"HTTP {resp.status_code}: {body.get('error_description') or err}"
    return f"HTTP {resp.status_code}"


class GraphService:
    """DirectoryService over Microsoft Graph v1.0."""

    def __init__(
        self,
        token: str,
        limiter: WriteRateLimiter,
        http: Optional[requests.Session] = None,
        base_url: str = GRAPH_API_BASE,
    ):
        self.http = http or build_http_session()
        self.http.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "ConsistencyLevel": "eventual",
            }
        )
        self.limiter = limiter
        self.base_url = base_url.rstrip("/")

    @classmethod
    def connect(
        cls,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        limiter: WriteRateLimiter,
    ) -> "GraphService":
        http = build_http_session()
        logger.info("Requesting Graph token for tenant %s ...", tenant_id)
        token = acquire_token(http, tenant_id, client_id, client_secret)
        svc = cls(token, limiter, http=http)
        try:
            svc._request("GET", "/organization", params={"$select": "id,displayName"})
        except ServiceError as e:
            raise SetupError(f"Connected, but Graph rejected a test call: {e}") from e
        logger.info("Connected to Microsoft Graph")
        return svc

    # ──────────────────────────────────────────────────────────────
    # LOW LEVEL
    # ──────────────────────────────────────────────────────────────
    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("https://"):
            return path_or_url
        return f"{self.base_url}{path_or_url}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = self._url(path)
        logger.debug("%s %s params=%s", method, url, params)
        try:
            resp = self.http.request(method, url, params=params, json=json, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise ServiceError(f"{method} {url} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise ServiceAccessError(_error_message(resp), status_code=resp.status_code)
        if resp.status_code >= 400:
            raise ServiceError(_error_message(resp), status_code=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    def _write(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> None:
        with self.limiter.write():
            self._request(method, path, json=json)

    def _list(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        on_page: Optional[PageCallback] = None,
    ) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = path
        page_params = params
        while next_url:
            body = self._request("GET", next_url, params=page_params)
            items.extend(body.get("value", []))
            if on_page:
                on_page(len(items))
            next_url = body.get("@odata.nextLink")
            # nextLink already carries the query string
            page_params = None
        return items

    # ──────────────────────────────────────────────────────────────
    # READS
    # ──────────────────────────────────────────────────────────────
    def list_managed_devices(
        self, properties: List[str], on_page: Optional[PageCallback] = None
    ) -> List[Dict[str, Any]]:
        return self._list(
            "/deviceManagement/managedDevices",
            params={"$select": ",".join(properties), "$top": "999"},
            on_page=on_page,
        )

    def list_groups(
        self, properties: List[str], on_page: Optional[PageCallback] = None
    ) -> List[Dict[str, Any]]:
        return self._list(
            "/groups",
            params={"$select": ",".join(properties), "$top": "999"},
            on_page=on_page,
        )

    def list_group_members(self, group_id: str) -> List[Dict[str, Any]]:
        return self._list(f"/groups/{group_id}/members", params={"$select": "id", "$top": "999"})

    def find_directory_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        matches = self._list(
            "/devices",
            params={
                "$filter": f"deviceId eq '{device_id}'",
                "$select": "id,deviceId,displayName,onPremisesSyncEnabled",
            },
        )
        return matches[0] if matches else None

    # ──────────────────────────────────────────────────────────────
    # WRITES
    # ──────────────────────────────────────────────────────────────
    def delete_managed_device(self, device_id: str) -> None:
        self._write("DELETE", f"/deviceManagement/managedDevices/{device_id}")

    def retire_managed_device(self, device_id: str) -> None:
        self._write("POST", f"/deviceManagement/managedDevices/{device_id}/retire")

    def wipe_managed_device(self, device_id: str, options: Dict[str, Any]) -> None:
        self._write("POST", f"/deviceManagement/managedDevices/{device_id}/wipe", json=options)

    def delete_group(self, group_id: str) -> None:
        self._write("DELETE", f"/groups/{group_id}")

    def rename_group(self, group_id: str, new_name: str) -> None:
        self._write("PATCH", f"/groups/{group_id}", json={"displayName": new_name})

    def delete_directory_device(self, object_id: str) -> None:
        self._write("DELETE", f"/devices/{object_id}")
