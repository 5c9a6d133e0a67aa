"""
One linear run: fetch -> filter -> select -> confirm -> execute -> audit.

The only clean exits before execution are "nothing to do", "nothing
selected" and "not confirmed"; none of them write an audit file.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .actions import execute_device_actions, execute_group_actions, plan_renames
from .audit import summarize, write_action_log, write_guard_excluded_log
from .confirm import confirm_device_action, confirm_group_action
from .fetch import annotate_member_counts, fetch_devices, fetch_groups
from .filters import describe_criteria, filter_devices, filter_groups
from .models import ActionResult, FilterCriteria, GroupCriteria, GuardPolicy, MatchMode, RenamePlan
from .selection import SelectionSurface
from .session import Session

logger = logging.getLogger("intune_cleanup.pipeline")

DEVICE_SELECTION_COLUMNS = [
    "device_name",
    "user_principal_name",
    "operating_system",
    "os_version",
    "compliance_state",
    "last_sync",
    "owner_type",
    "enrollment_type",
    "management_agent",
    "azure_ad_device_id",
]

GROUP_SELECTION_COLUMNS = [
    "display_name",
    "member_count",
    "group_types",
    "security_enabled",
    "mail_enabled",
    "on_premises_sync_enabled",
    "group_id",
]


class RunStatus(str, Enum):
    NOTHING_TO_DO = "nothing-to-do"
    NOTHING_SELECTED = "nothing-selected"
    ABORTED = "aborted"
    COMPLETED = "completed"


@dataclass
class RunReport:
    status: RunStatus
    results: List[ActionResult] = field(default_factory=list)
    guard_excluded: List = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    action_log: Optional[str] = None
    guard_log: Optional[str] = None


def _log_summary(results: List[ActionResult]) -> None:
    summary = summarize(results)
    logger.info("=== Summary (%d item(s)) ===", summary["total"])
    for status, count in sorted(summary["by_status"].items()):
        logger.info("  %-22s %d", status, count)
    for outcome, count in sorted(summary["by_directory_outcome"].items()):
        logger.info("  directory %-12s %d", outcome, count)


def run_device_cleanup(
    session: Session,
    criteria: FilterCriteria,
    guard: Optional[GuardPolicy],
    surface: SelectionSurface,
    log_dir: str,
    directory_requested: bool = False,
    ask: Callable[[str], str] = input,
) -> RunReport:
    logger.info("=== Device cleanup (%s) ===", session.mode_label)
    for line in describe_criteria(criteria, guard):
        logger.info(line)

    devices = fetch_devices(session)
    filtered = filter_devices(devices, criteria, guard, session.clock())

    if guard is not None and filtered.guard_excluded:
        logger.info(
            "%d device(s) checked in within the last %d days and are protected by the guard.",
            len(filtered.guard_excluded),
            guard.min_age_days,
        )
    if not filtered.eligible:
        logger.info("No devices match the filters. Nothing to do.")
        return RunReport(RunStatus.NOTHING_TO_DO, guard_excluded=filtered.guard_excluded)

    chosen = surface.select(filtered.eligible, DEVICE_SELECTION_COLUMNS, "Select devices")
    if not chosen:
        logger.info("No devices selected. Exiting without changes.")
        return RunReport(RunStatus.NOTHING_SELECTED, guard_excluded=filtered.guard_excluded)
    logger.info("%d device(s) selected.", len(chosen))

    decision = confirm_device_action(session.dry_run, directory_requested, ask=ask)
    if not decision.confirmed:
        return RunReport(RunStatus.ABORTED, guard_excluded=filtered.guard_excluded)

    results = execute_device_actions(
        session,
        chosen,
        decision.action,
        directory_requested=directory_requested,
        directory_confirmed=decision.secondary,
    )

    action_log = write_action_log(results, "device", log_dir, session.started_at, session.dry_run)
    guard_log = None
    if guard is not None:
        guard_log = write_guard_excluded_log(filtered.guard_excluded, guard.min_age_days, log_dir, session.started_at)

    _log_summary(results)
    return RunReport(
        RunStatus.COMPLETED,
        results=results,
        guard_excluded=filtered.guard_excluded,
        action_log=action_log,
        guard_log=guard_log,
    )


def run_group_cleanup(
    session: Session,
    criteria: GroupCriteria,
    surface: SelectionSurface,
    log_dir: str,
    rename_plan: Optional[RenamePlan] = None,
    ask: Callable[[str], str] = input,
) -> RunReport:
    logger.info("=== Group cleanup (%s) ===", session.mode_label)
    if criteria.mode is MatchMode.EMPTY:
        logger.info("Filter: groups with no members")
    else:
        logger.info("Filter: display name %s '%s'", criteria.mode.value, criteria.text)

    groups = fetch_groups(session)
    filtered = filter_groups(session, groups, criteria)
    candidates = filtered.eligible

    if not candidates:
        logger.info("No groups match the filter. Nothing to do.")
        return RunReport(RunStatus.NOTHING_TO_DO, warnings=filtered.warnings)

    if criteria.mode is not MatchMode.EMPTY:
        candidates = annotate_member_counts(session, candidates)

    chosen = surface.select(candidates, GROUP_SELECTION_COLUMNS, "Select groups")
    if not chosen:
        logger.info("No groups selected. Exiting without changes.")
        return RunReport(RunStatus.NOTHING_SELECTED, warnings=filtered.warnings)
    logger.info("%d group(s) selected.", len(chosen))

    new_names = {}
    if rename_plan is not None:
        new_names = plan_renames(rename_plan, chosen)
        for group in chosen:
            logger.info("Rename preview: '%s' -> '%s'", group.display_name, new_names[group.id])

    decision = confirm_group_action(session.dry_run, rename_plan is not None, ask=ask)
    if not decision.confirmed:
        return RunReport(RunStatus.ABORTED, warnings=filtered.warnings)

    results = execute_group_actions(session, chosen, decision.action, new_names)
    action_log = write_action_log(results, "group", log_dir, session.started_at, session.dry_run)

    _log_summary(results)
    return RunReport(
        RunStatus.COMPLETED,
        results=results,
        warnings=filtered.warnings,
        action_log=action_log,
    )
