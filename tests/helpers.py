from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from intune_cleanup.models import ComplianceState, DirectoryGroup, ManagedDevice, OwnerType

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeService:
    """In-memory DirectoryService that records every call."""

    def __init__(
        self,
        devices: Optional[List[Dict[str, Any]]] = None,
        groups: Optional[List[Dict[str, Any]]] = None,
        members: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        directory: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.devices = devices or []
        self.groups = groups or []
        self.members = members or {}
        self.directory = directory or {}
        self.fail: Dict[str, Exception] = {}
        self.member_errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    @property
    def write_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] not in ("list_managed_devices", "list_groups", "list_group_members", "find_directory_device")]

    def _maybe_fail(self, key: str) -> None:
        if key in self.fail:
            raise self.fail[key]

    def list_managed_devices(self, properties, on_page=None):
        self.calls.append(("list_managed_devices",))
        if on_page:
            on_page(len(self.devices))
        return list(self.devices)

    def list_groups(self, properties, on_page=None):
        self.calls.append(("list_groups",))
        return list(self.groups)

    def list_group_members(self, group_id):
        self.calls.append(("list_group_members", group_id))
        if group_id in self.member_errors:
            raise self.member_errors[group_id]
        return list(self.members.get(group_id, []))

    def delete_managed_device(self, device_id):
        self.calls.append(("delete_managed_device", device_id))
        self._maybe_fail(device_id)

    def retire_managed_device(self, device_id):
        self.calls.append(("retire_managed_device", device_id))
        self._maybe_fail(device_id)

    def wipe_managed_device(self, device_id, options):
        self.calls.append(("wipe_managed_device", device_id, options))
        self._maybe_fail(device_id)

    def delete_group(self, group_id):
        self.calls.append(("delete_group", group_id))
        self._maybe_fail(group_id)

    def rename_group(self, group_id, new_name):
        self.calls.append(("rename_group", group_id, new_name))
        self._maybe_fail(group_id)

    def find_directory_device(self, device_id):
        self.calls.append(("find_directory_device", device_id))
        self._maybe_fail("find:" + device_id)
        return self.directory.get(device_id)

    def delete_directory_device(self, object_id):
        self.calls.append(("delete_directory_device", object_id))
        self._maybe_fail("dir:" + object_id)


def make_device(
    id: str,
    compliance: ComplianceState = ComplianceState.NONCOMPLIANT,
    days_ago: Optional[float] = 40,
    os_name: str = "Windows",
    owner: OwnerType = OwnerType.COMPANY,
    cross_id: str = "",
) -> ManagedDevice:
    return ManagedDevice(
        id=id,
        device_name=f"PC-{id}",
        user_principal_name=f"{id.lower()}@contoso.com",
        operating_system=os_name,
        os_version="10.0.19045",
        compliance_state=compliance,
        last_sync=None if days_ago is None else NOW - timedelta(days=days_ago),
        management_agent="mdm",
        azure_ad_device_id=cross_id,
        enrollment_type="windowsAzureADJoin",
        owner_type=owner,
    )


def graph_device(id: str, compliance: str = "noncompliant", last_sync: str = "2026-01-01T00:00:00Z", cross_id: str = "") -> Dict[str, Any]:
    return {
        "id": id,
        "deviceName": f"PC-{id}",
        "userId": "u-1",
        "userPrincipalName": "user@contoso.com",
        "operatingSystem": "Windows",
        "osVersion": "10.0.22631",
        "complianceState": compliance,
        "lastSyncDateTime": last_sync,
        "managementAgent": "mdm",
        "azureADDeviceId": cross_id,
        "deviceEnrollmentType": "windowsAzureADJoin",
        "managedDeviceOwnerType": "company",
    }


def make_group(id: str, name: str, synced: bool = False) -> DirectoryGroup:
    return DirectoryGroup(id=id, display_name=name, security_enabled=True, on_premises_sync_enabled=synced)


def graph_group(id: str, name: str) -> Dict[str, Any]:
    return {
        "id": id,
        "displayName": name,
        "groupTypes": [],
        "securityEnabled": True,
        "mailEnabled": False,
        "onPremisesSyncEnabled": None,
    }


class ScriptedInput:
    """Callable standing in for input(); hands out answers in order."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.prompts: List[str] = []

    def __call__(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {prompt}")
        return self.answers.pop(0)


