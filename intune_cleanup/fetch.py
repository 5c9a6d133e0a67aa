"""Inventory fetch: pull devices / groups from the service and turn them into snapshots."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import ComplianceState, DirectoryDevice, DirectoryGroup, ManagedDevice, OwnerType
from .service import EmptyInventoryError, ServiceError
from .session import Session

logger = logging.getLogger("intune_cleanup.fetch")

DEVICE_PROPERTIES = [
    "id",
    "deviceName",
    "userId",
    "userPrincipalName",
    "operatingSystem",
    "osVersion",
    "complianceState",
    "lastSyncDateTime",
    "managementAgent",
    "azureADDeviceId",
    "deviceEnrollmentType",
    "managedDeviceOwnerType",
]

GROUP_PROPERTIES = [
    "id",
    "displayName",
    "groupTypes",
    "securityEnabled",
    "mailEnabled",
    "onPremisesSyncEnabled",
]

# Intune reports "never synced" as the minimum DateTimeOffset
_NEVER = "0001-01-01"
_NULL_DEVICE_ID = "00000000-0000-0000-0000-000000000000"


def parse_graph_datetime(raw: Optional[str]) -> Optional[datetime]:
    if not raw or raw.startswith(_NEVER):
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Graph sends 1-7 fractional digits; older fromisoformat wants exactly 3 or 6
    if "." in text:
        head, rest = text.split(".", 1)
        frac = rest
        tz = ""
        for sep in ("+", "-"):
            if sep in rest:
                frac, tz = rest.split(sep, 1)
                tz = sep + tz
                break
        text = f"{head}.{frac[:6].ljust(6, '0')}{tz}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _owner_type(raw: Optional[str]) -> OwnerType:
    try:
        return OwnerType((raw or "").lower())
    except ValueError:
        return OwnerType.UNKNOWN


def device_from_graph(item: Dict[str, Any]) -> ManagedDevice:
    cross_id = item.get("azureADDeviceId") or ""
    if cross_id == _NULL_DEVICE_ID:
        cross_id = ""
    return ManagedDevice(
        id=item["id"],
        device_name=item.get("deviceName") or "",
        user_id=item.get("userId") or "",
        user_principal_name=item.get("userPrincipalName") or "",
        operating_system=item.get("operatingSystem") or "",
        os_version=item.get("osVersion") or "",
        compliance_state=ComplianceState.parse(item.get("complianceState")),
        last_sync=parse_graph_datetime(item.get("lastSyncDateTime")),
        management_agent=item.get("managementAgent") or "",
        azure_ad_device_id=cross_id,
        enrollment_type=item.get("deviceEnrollmentType") or "",
        owner_type=_owner_type(item.get("managedDeviceOwnerType")),
    )


def group_from_graph(item: Dict[str, Any]) -> DirectoryGroup:
    return DirectoryGroup(
        id=item["id"],
        display_name=item.get("displayName") or "",
        group_types=tuple(item.get("groupTypes") or ()),
        security_enabled=bool(item.get("securityEnabled")),
        mail_enabled=bool(item.get("mailEnabled")),
        on_premises_sync_enabled=bool(item.get("onPremisesSyncEnabled")),
    )


def directory_device_from_graph(item: Dict[str, Any]) -> DirectoryDevice:
    return DirectoryDevice(
        object_id=item["id"],
        device_id=item.get("deviceId") or "",
        display_name=item.get("displayName") or "",
        on_premises_sync_enabled=bool(item.get("onPremisesSyncEnabled")),
    )


def _page_logger(label: str):
    def on_page(count: int) -> None:
        logger.info("Fetched %d %s so far...", count, label)

    return on_page


def fetch_devices(session: Session) -> List[ManagedDevice]:
    logger.info("Pulling managed devices from tenant %s ...", session.tenant_id)
    raw = session.service.list_managed_devices(DEVICE_PROPERTIES, on_page=_page_logger("devices"))
    if not raw:
        raise EmptyInventoryError("No managed devices were returned for this tenant.")
    devices = [device_from_graph(item) for item in raw]
    logger.info("Found %d managed devices.", len(devices))
    return devices


def fetch_groups(session: Session) -> List[DirectoryGroup]:
    logger.info("Pulling directory groups from tenant %s ...", session.tenant_id)
    raw = session.service.list_groups(GROUP_PROPERTIES, on_page=_page_logger("groups"))
    if not raw:
        raise EmptyInventoryError("No groups were returned for this tenant.")
    groups = [group_from_graph(item) for item in raw]
    logger.info("Found %d groups.", len(groups))
    return groups


def count_members(session: Session, group: DirectoryGroup) -> Optional[int]:
    """Full paged member enumeration. Returns None if the members cannot be read."""
    try:
        return len(session.service.list_group_members(group.id))
    except ServiceError as e:
        logger.warning("Could not enumerate members of '%s' (%s): %s", group.display_name, group.id, e)
        return None


def annotate_member_counts(session: Session, groups: List[DirectoryGroup]) -> List[DirectoryGroup]:
    annotated: List[DirectoryGroup] = []
    total = len(groups)
    for i, group in enumerate(groups, 1):
        logger.info("[%d/%d] Counting members of '%s'", i, total, group.display_name)
        annotated.append(replace(group, member_count=count_members(session, group)))
    return annotated
