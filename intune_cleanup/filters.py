"""
Candidate filtering.

Devices are checked against compliance, OS, owner and last check-in age. When a
guard is active, a device that passes everything except the age check is
reported as guard-excluded instead of being dropped.

Groups are matched by display name (prefix / substring / regular expression)
or by having no members at all.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from .fetch import count_members
from .models import (
    DirectoryGroup,
    FilterCriteria,
    FilterOutcome,
    GroupCriteria,
    GuardPolicy,
    ManagedDevice,
    MatchMode,
    OwnerConstraint,
)
from .session import Session

logger = logging.getLogger("intune_cleanup.filters")


# ──────────────────────────────────────────────────────────────────
# DEVICES
# ──────────────────────────────────────────────────────────────────
def effective_cutoff(now: datetime, criteria: FilterCriteria, guard: Optional[GuardPolicy]) -> datetime:
    """The older of the guard cutoff and the operator cutoff wins."""
    operator_cutoff = now - timedelta(days=criteria.min_age_days)
    if guard is None:
        return operator_cutoff
    return min(operator_cutoff, now - timedelta(days=guard.min_age_days))


def matches_compliance(device: ManagedDevice, criteria: FilterCriteria) -> bool:
    return device.compliance_state in criteria.compliance_states


def matches_os(device: ManagedDevice, criteria: FilterCriteria) -> bool:
    if not criteria.os_prefixes:
        return True
    if not device.operating_system:
        return False
    return any(device.operating_system.startswith(p) for p in criteria.os_prefixes)


def matches_owner(device: ManagedDevice, criteria: FilterCriteria) -> bool:
    if criteria.owner is OwnerConstraint.ANY:
        return True
    return device.owner_type.value == criteria.owner.value


def old_enough(device: ManagedDevice, cutoff: datetime) -> bool:
    # never checked in counts as maximally old
    if device.last_sync is None:
        return True
    return device.last_sync <= cutoff


def filter_devices(
    devices: Sequence[ManagedDevice],
    criteria: FilterCriteria,
    guard: Optional[GuardPolicy],
    now: datetime,
) -> FilterOutcome:
    cutoff = effective_cutoff(now, criteria, guard)
    operator_cutoff = effective_cutoff(now, criteria, None)
    outcome = FilterOutcome()
    dropped = 0

    for device in devices:
        if not (matches_compliance(device, criteria) and matches_os(device, criteria) and matches_owner(device, criteria)):
            dropped += 1
            continue
        if not old_enough(device, cutoff):
            # guard-excluded only when the operator's own minimum would have let it through
            if guard is not None and old_enough(device, operator_cutoff):
                outcome.guard_excluded.append(device)
            else:
                dropped += 1
            continue
        outcome.eligible.append(device)

    logger.info(
        "Device filter: %d eligible, %d guard-excluded, %d not matching (cutoff %s)",
        len(outcome.eligible),
        len(outcome.guard_excluded),
        dropped,
        cutoff.strftime("%Y-%m-%d %H:%M:%S %Z"),
    )
    return outcome


# ──────────────────────────────────────────────────────────────────
# GROUPS
# ──────────────────────────────────────────────────────────────────
def name_matches(group: DirectoryGroup, criteria: GroupCriteria) -> bool:
    """Raises re.error for a malformed pattern; callers decide how to report it."""
    name = group.display_name or ""
    if criteria.mode is MatchMode.PREFIX:
        return name.lower().startswith(criteria.text.lower())
    if criteria.mode is MatchMode.SUBSTRING:
        return criteria.text.lower() in name.lower()
    if criteria.mode is MatchMode.PATTERN:
        return re.search(criteria.text, name) is not None
    raise ValueError(f"{criteria.mode.value} is not a name-match mode")


def filter_groups_by_name(groups: Sequence[DirectoryGroup], criteria: GroupCriteria) -> FilterOutcome:
    outcome = FilterOutcome()
    for group in groups:
        try:
            matched = name_matches(group, criteria)
        except re.error as e:
            msg = f"Pattern '{criteria.text}' could not be applied to '{group.display_name}': {e}"
            logger.warning(msg)
            outcome.warnings.append(msg)
            continue
        if matched:
            outcome.eligible.append(group)

    logger.info(
        "Group name filter (%s '%s'): %d of %d matched",
        criteria.mode.value,
        criteria.text,
        len(outcome.eligible),
        len(groups),
    )
    return outcome


def filter_empty_groups(session: Session, groups: Sequence[DirectoryGroup]) -> FilterOutcome:
    """One full member enumeration per group. Unreadable groups are kept out."""
    outcome = FilterOutcome()
    total = len(groups)
    for i, group in enumerate(groups, 1):
        logger.info("[%d/%d] Checking members of '%s'", i, total, group.display_name)
        count = count_members(session, group)
        if count is None:
            outcome.warnings.append(f"Members of '{group.display_name}' could not be read; treated as non-empty")
            continue
        if count == 0:
            outcome.eligible.append(replace(group, member_count=0))

    logger.info("Empty group filter: %d of %d groups have no members", len(outcome.eligible), total)
    return outcome


def filter_groups(session: Session, groups: Sequence[DirectoryGroup], criteria: GroupCriteria) -> FilterOutcome:
    if criteria.mode is MatchMode.EMPTY:
        return filter_empty_groups(session, groups)
    return filter_groups_by_name(groups, criteria)


def describe_criteria(criteria: FilterCriteria, guard: Optional[GuardPolicy]) -> List[str]:
    lines = [
        "Compliance states: " + ", ".join(sorted(s.value for s in criteria.compliance_states)),
        "OS prefixes: " + (", ".join(criteria.os_prefixes) if criteria.os_prefixes else "(all)"),
        f"Owner type: {criteria.owner.value}",
        f"Minimum days since last check-in: {criteria.min_age_days}",
        f"Guard: {guard.min_age_days} days" if guard else "Guard: OFF",
    ]
    return lines
