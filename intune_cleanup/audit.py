"""
Audit artifacts for one run.

- <kind>_actions_<YYYYmmdd-HHMMSS>.csv: one row per attempted entity
- device_guard_excluded_<YYYYmmdd-HHMMSS>.csv: devices the guard kept out of selection

Files are written once, after the action loop, and never overwrite an earlier run.
"""

import logging
import os
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from .models import ActionResult, ManagedDevice

logger = logging.getLogger("intune_cleanup.audit")

RESULT_COLUMNS = [
    "timestamp",
    "mode",
    "action",
    "status",
    "error",
    "directory_outcome",
    "directory_error",
]

DEVICE_COLUMNS = [
    "device_id",
    "device_name",
    "user_id",
    "user_principal_name",
    "operating_system",
    "os_version",
    "compliance_state",
    "last_sync",
    "management_agent",
    "azure_ad_device_id",
    "enrollment_type",
    "owner_type",
]

GROUP_COLUMNS = [
    "group_id",
    "display_name",
    "new_name",
    "group_types",
    "security_enabled",
    "mail_enabled",
    "on_premises_sync_enabled",
    "member_count",
]


def run_stamp(started_at: datetime) -> str:
    return started_at.strftime("%Y%m%d-%H%M%S")


def unique_path(directory: str, stem: str, ext: str = ".csv") -> str:
    """Never hand back a path that already exists."""
    path = os.path.join(directory, f"{stem}{ext}")
    n = 1
    while os.path.exists(path):
        path = os.path.join(directory, f"{stem}_{n}{ext}")
        n += 1
    return path


def write_action_log(
    results: Sequence[ActionResult],
    kind: str,
    log_dir: str,
    started_at: datetime,
    dry_run: bool,
) -> str:
    os.makedirs(log_dir, exist_ok=True)
    out_path = os.path.abspath(unique_path(log_dir, f"{kind}_actions_{run_stamp(started_at)}"))

    entity_columns = DEVICE_COLUMNS if kind == "device" else GROUP_COLUMNS
    written_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    mode = "dry-run" if dry_run else "live"

    rows = []
    for result in results:
        row = result.row()
        row["timestamp"] = written_at
        row["mode"] = mode
        rows.append(row)

    pd.DataFrame(rows, columns=RESULT_COLUMNS + entity_columns).fillna("").to_csv(out_path, index=False)
    logger.info("Action log written to: %s (%d rows)", out_path, len(rows))
    return out_path


def write_guard_excluded_log(
    devices: Sequence[ManagedDevice],
    guard_days: int,
    log_dir: str,
    started_at: datetime,
) -> Optional[str]:
    if not devices:
        return None
    os.makedirs(log_dir, exist_ok=True)
    out_path = os.path.abspath(unique_path(log_dir, f"device_guard_excluded_{run_stamp(started_at)}"))

    rows: List[dict] = []
    for device in devices:
        row = device.snapshot()
        row["reason"] = f"checked in within the last {guard_days} days"
        rows.append(row)

    pd.DataFrame(rows, columns=DEVICE_COLUMNS + ["reason"]).to_csv(out_path, index=False)
    logger.info("Guard-excluded report written to: %s (%d rows)", out_path, len(rows))
    return out_path


def summarize(results: Sequence[ActionResult]) -> dict:
    summary = {
        "total": len(results),
        "by_status": {},
        "by_directory_outcome": {},
    }
    for result in results:
        summary["by_status"][result.status] = summary["by_status"].get(result.status, 0) + 1
        key = result.secondary.value
        summary["by_directory_outcome"][key] = summary["by_directory_outcome"].get(key, 0) + 1
    return summary
