"""
Per-item action execution.

The loop is strictly sequential. Every selected entity gets exactly one
ActionResult, whatever happens to it; a failure on one entity never stops
the run.

For devices the directory (Entra ID) deletion is a second, independent step:
- only when it was requested, and only for devices carrying an azureADDeviceId
- a directory object with onPremisesSyncEnabled is never deleted (skipped-hybrid)
- a primary failure does not prevent it, and its failure does not touch the primary result
- when the operator declined it, every device reads not-attempted except hybrid ones
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .fetch import directory_device_from_graph
from .models import (
    ActionResult,
    DeviceAction,
    DirectoryGroup,
    GroupAction,
    ManagedDevice,
    MatchMode,
    PrimaryOutcome,
    RenamePlan,
    SecondaryOutcome,
)
from .service import DirectoryService
from .session import Session

logger = logging.getLogger("intune_cleanup.actions")

# Fixed wipe request body; not operator input
WIPE_OPTIONS: Dict[str, bool] = {
    "keepEnrollmentData": False,
    "keepUserData": False,
    "persistEsimDataPlan": False,
    "useProtectedWipe": False,
}


# ──────────────────────────────────────────────────────────────────
# DISPATCH TABLES
# ──────────────────────────────────────────────────────────────────
def _delete_device(svc: DirectoryService, device: ManagedDevice) -> None:
    svc.delete_managed_device(device.id)


def _retire_device(svc: DirectoryService, device: ManagedDevice) -> None:
    svc.retire_managed_device(device.id)


def _wipe_device(svc: DirectoryService, device: ManagedDevice) -> None:
    svc.wipe_managed_device(device.id, dict(WIPE_OPTIONS))


DEVICE_OPERATIONS: Dict[DeviceAction, Callable[[DirectoryService, ManagedDevice], None]] = {
    DeviceAction.DELETE: _delete_device,
    DeviceAction.RETIRE: _retire_device,
    DeviceAction.WIPE: _wipe_device,
}


def _delete_group(svc: DirectoryService, group: DirectoryGroup, new_name: str) -> None:
    svc.delete_group(group.id)


def _rename_group(svc: DirectoryService, group: DirectoryGroup, new_name: str) -> None:
    svc.rename_group(group.id, new_name)


GROUP_OPERATIONS: Dict[GroupAction, Callable[[DirectoryService, DirectoryGroup, str], None]] = {
    GroupAction.DELETE: _delete_group,
    GroupAction.RENAME: _rename_group,
}


# ──────────────────────────────────────────────────────────────────
# DEVICES
# ──────────────────────────────────────────────────────────────────
def _primary_device_step(session: Session, action: DeviceAction, device: ManagedDevice) -> Tuple[PrimaryOutcome, str]:
    if session.dry_run:
        logger.info("[DRY-RUN] Would %s device '%s' (%s)", action.verb, device.device_name, device.id)
        return PrimaryOutcome.WOULD_SUCCEED, ""
    try:
        logger.info("%s device '%s' (%s)", action.value.upper(), device.device_name, device.id)
        DEVICE_OPERATIONS[action](session.service, device)
        return PrimaryOutcome.SUCCEEDED, ""
    except Exception as e:
        logger.warning("Could not %s device '%s' (%s): %s", action.verb, device.device_name, device.id, e)
        return PrimaryOutcome.FAILED, str(e)


def _directory_step(
    session: Session, device: ManagedDevice, requested: bool, confirmed: bool
) -> Tuple[SecondaryOutcome, str]:
    if not requested:
        return SecondaryOutcome.NOT_ATTEMPTED, ""
    # a declined step still reports hybrid objects, nothing else
    if not device.azure_ad_device_id:
        if not confirmed:
            return SecondaryOutcome.NOT_ATTEMPTED, ""
        return SecondaryOutcome.SKIPPED, ""

    try:
        found = session.service.find_directory_device(device.azure_ad_device_id)
    except Exception as e:
        if not confirmed:
            logger.debug("Directory lookup failed for '%s' (%s): %s", device.device_name, device.azure_ad_device_id, e)
            return SecondaryOutcome.NOT_ATTEMPTED, ""
        logger.warning("Directory lookup failed for '%s' (%s): %s", device.device_name, device.azure_ad_device_id, e)
        return SecondaryOutcome.FAILED, str(e)

    if found is None:
        if not confirmed:
            return SecondaryOutcome.NOT_ATTEMPTED, ""
        logger.info("No directory device object for '%s' (%s)", device.device_name, device.azure_ad_device_id)
        return SecondaryOutcome.NOT_FOUND, ""

    obj = directory_device_from_graph(found)
    if obj.on_premises_sync_enabled:
        logger.warning(
            "Directory object for '%s' (%s) is synced from on-premises; it will not be deleted.",
            device.device_name,
            obj.object_id,
        )
        return SecondaryOutcome.SKIPPED_HYBRID, ""

    if not confirmed:
        return SecondaryOutcome.NOT_ATTEMPTED, ""

    if session.dry_run:
        logger.info("[DRY-RUN] Would delete directory object %s for '%s'", obj.object_id, device.device_name)
        return SecondaryOutcome.WOULD_DELETE, ""

    try:
        logger.info("DELETE directory object %s for '%s'", obj.object_id, device.device_name)
        session.service.delete_directory_device(obj.object_id)
        return SecondaryOutcome.DELETED, ""
    except Exception as e:
        logger.warning("Could not delete directory object %s for '%s': %s", obj.object_id, device.device_name, e)
        return SecondaryOutcome.FAILED, str(e)


def execute_device_actions(
    session: Session,
    devices: Sequence[ManagedDevice],
    action: DeviceAction,
    directory_requested: bool = False,
    directory_confirmed: bool = False,
) -> List[ActionResult]:
    results: List[ActionResult] = []
    total = len(devices)
    logger.info("[%s] %s on %d device(s)...", session.mode_label, action.value, total)

    for i, device in enumerate(devices, 1):
        logger.info("[%d/%d] %s", i, total, device.device_name or device.id)
        outcome, error = _primary_device_step(session, action, device)
        secondary, secondary_error = _directory_step(session, device, directory_requested, directory_confirmed)
        results.append(
            ActionResult(
                action=action.value,
                verb=action.verb,
                outcome=outcome,
                error=error,
                secondary=secondary,
                secondary_error=secondary_error,
                snapshot=device.snapshot(),
            )
        )
    return results


# ──────────────────────────────────────────────────────────────────
# GROUPS
# ──────────────────────────────────────────────────────────────────
def resolve_new_name(plan: RenamePlan, name: str) -> str:
    """Raises re.error for a malformed pattern."""
    if plan.mode is MatchMode.PREFIX:
        if name.lower().startswith(plan.find.lower()):
            return plan.replace + name[len(plan.find):]
        return name
    if plan.mode is MatchMode.SUBSTRING:
        return re.sub(re.escape(plan.find), lambda _m: plan.replace, name, flags=re.IGNORECASE)
    if plan.mode is MatchMode.PATTERN:
        return re.sub(plan.find, plan.replace, name)
    raise ValueError(f"Groups cannot be renamed in {plan.mode.value} mode")


def plan_renames(plan: RenamePlan, groups: Sequence[DirectoryGroup]) -> Dict[str, str]:
    """group id -> new display name, resolved once before confirmation."""
    names: Dict[str, str] = {}
    for group in groups:
        try:
            names[group.id] = resolve_new_name(plan, group.display_name)
        except re.error as e:
            logger.warning("Could not resolve new name for '%s': %s", group.display_name, e)
            names[group.id] = group.display_name
    return names


def _primary_group_step(
    session: Session, action: GroupAction, group: DirectoryGroup, new_name: str
) -> Tuple[PrimaryOutcome, str]:
    if action is GroupAction.RENAME and not new_name:
        return PrimaryOutcome.FAILED, "no new name was resolved"
    if action is GroupAction.RENAME and new_name == group.display_name:
        return PrimaryOutcome.FAILED, "new name is identical to the current name"
    if session.dry_run:
        logger.info("[DRY-RUN] Would %s group '%s' (%s)", action.verb, group.display_name, group.id)
        return PrimaryOutcome.WOULD_SUCCEED, ""
    try:
        if action is GroupAction.RENAME:
            logger.info("RENAME group '%s' -> '%s' (%s)", group.display_name, new_name, group.id)
        else:
            logger.info("DELETE group '%s' (%s)", group.display_name, group.id)
        GROUP_OPERATIONS[action](session.service, group, new_name)
        return PrimaryOutcome.SUCCEEDED, ""
    except Exception as e:
        logger.warning("Could not %s group '%s' (%s): %s", action.verb, group.display_name, group.id, e)
        return PrimaryOutcome.FAILED, str(e)


def execute_group_actions(
    session: Session,
    groups: Sequence[DirectoryGroup],
    action: GroupAction,
    new_names: Optional[Dict[str, str]] = None,
) -> List[ActionResult]:
    new_names = new_names or {}
    results: List[ActionResult] = []
    total = len(groups)
    logger.info("[%s] %s on %d group(s)...", session.mode_label, action.value, total)

    for i, group in enumerate(groups, 1):
        logger.info("[%d/%d] %s", i, total, group.display_name or group.id)
        new_name = new_names.get(group.id, "") if action is GroupAction.RENAME else ""
        outcome, error = _primary_group_step(session, action, group, new_name)
        results.append(
            ActionResult(
                action=action.value,
                verb=action.verb,
                outcome=outcome,
                error=error,
                secondary=SecondaryOutcome.NOT_ATTEMPTED,
                snapshot=group.snapshot(),
                new_name=new_name,
            )
        )
    return results
