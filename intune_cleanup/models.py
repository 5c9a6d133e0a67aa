"""
Data model for one cleanup run.

Devices and groups are snapshots taken at fetch time. Nothing is re-read
before an action is taken against them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


# ──────────────────────────────────────────────────────────────────
# ENUMS
# ──────────────────────────────────────────────────────────────────
class ComplianceState(str, Enum):
    COMPLIANT = "compliant"
    NONCOMPLIANT = "noncompliant"
    ERROR = "error"
    CONFLICT = "conflict"
    IN_GRACE_PERIOD = "inGracePeriod"
    CONFIG_MANAGER = "configManager"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ComplianceState":
        if not raw:
            return cls.UNKNOWN
        for state in cls:
            if state.value.lower() == raw.strip().lower():
                return state
        return cls.UNKNOWN


class OwnerType(str, Enum):
    COMPANY = "company"
    PERSONAL = "personal"
    UNKNOWN = "unknown"


class OwnerConstraint(str, Enum):
    ANY = "any"
    COMPANY = "company"
    PERSONAL = "personal"


class MatchMode(str, Enum):
    PREFIX = "prefix"
    SUBSTRING = "substring"
    PATTERN = "pattern"
    EMPTY = "empty"


class PrimaryOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    WOULD_SUCCEED = "would-succeed"


class SecondaryOutcome(str, Enum):
    SKIPPED = "skipped"
    SKIPPED_HYBRID = "skipped-hybrid"
    DELETED = "deleted"
    WOULD_DELETE = "would-delete"
    NOT_FOUND = "not-found"
    FAILED = "failed"
    NOT_ATTEMPTED = "not-attempted"


class DeviceAction(str, Enum):
    DELETE = "Delete"
    RETIRE = "Retire"
    WIPE = "Wipe"

    @property
    def verb(self) -> str:
        return self.value.lower()


class GroupAction(str, Enum):
    DELETE = "Delete"
    RENAME = "Rename"

    @property
    def verb(self) -> str:
        return self.value.lower()


# ──────────────────────────────────────────────────────────────────
# ENTITIES
# ──────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ManagedDevice:
    id: str
    device_name: str = ""
    user_id: str = ""
    user_principal_name: str = ""
    operating_system: str = ""
    os_version: str = ""
    compliance_state: ComplianceState = ComplianceState.UNKNOWN
    last_sync: Optional[datetime] = None
    management_agent: str = ""
    azure_ad_device_id: str = ""
    enrollment_type: str = ""
    owner_type: OwnerType = OwnerType.UNKNOWN

    @property
    def display_name(self) -> str:
        return self.device_name

    def snapshot(self) -> Dict[str, str]:
        """Flat, string-only view used for audit rows and selection tables."""
        return {
            "device_id": self.id,
            "device_name": self.device_name,
            "user_id": self.user_id,
            "user_principal_name": self.user_principal_name,
            "operating_system": self.operating_system,
            "os_version": self.os_version,
            "compliance_state": self.compliance_state.value,
            "last_sync": self.last_sync.isoformat() if self.last_sync else "never",
            "management_agent": self.management_agent,
            "azure_ad_device_id": self.azure_ad_device_id,
            "enrollment_type": self.enrollment_type,
            "owner_type": self.owner_type.value,
        }


@dataclass(frozen=True)
class DirectoryGroup:
    id: str
    display_name: str = ""
    group_types: Tuple[str, ...] = ()
    security_enabled: bool = False
    mail_enabled: bool = False
    on_premises_sync_enabled: bool = False
    member_count: Optional[int] = None

    def snapshot(self) -> Dict[str, str]:
        return {
            "group_id": self.id,
            "display_name": self.display_name,
            "group_types": ";".join(self.group_types),
            "security_enabled": str(self.security_enabled),
            "mail_enabled": str(self.mail_enabled),
            "on_premises_sync_enabled": str(self.on_premises_sync_enabled),
            "member_count": "" if self.member_count is None else str(self.member_count),
        }


@dataclass(frozen=True)
class DirectoryDevice:
    """Directory-side object a managed device points at via its cross-system id."""

    object_id: str
    device_id: str
    display_name: str = ""
    on_premises_sync_enabled: bool = False


# ──────────────────────────────────────────────────────────────────
# RUN CONFIGURATION
# ──────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class FilterCriteria:
    compliance_states: FrozenSet[ComplianceState] = frozenset({ComplianceState.NONCOMPLIANT})
    os_prefixes: Tuple[str, ...] = ()
    owner: OwnerConstraint = OwnerConstraint.ANY
    min_age_days: int = 0


@dataclass(frozen=True)
class GroupCriteria:
    mode: MatchMode = MatchMode.PREFIX
    text: str = ""


@dataclass(frozen=True)
class GuardPolicy:
    min_age_days: int = 30


DEFAULT_GUARD = GuardPolicy()


@dataclass(frozen=True)
class RenamePlan:
    """How a matched group's display name becomes its new name."""

    mode: MatchMode
    find: str
    replace: str


# ──────────────────────────────────────────────────────────────────
# RESULTS
# ──────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ActionResult:
    action: str
    verb: str
    outcome: PrimaryOutcome
    error: str = ""
    secondary: SecondaryOutcome = SecondaryOutcome.NOT_ATTEMPTED
    secondary_error: str = ""
    snapshot: Dict[str, str] = field(default_factory=dict)
    new_name: str = ""

    @property
    def status(self) -> str:
        if self.outcome is PrimaryOutcome.WOULD_SUCCEED:
            return f"would-{self.verb}"
        if self.outcome is PrimaryOutcome.FAILED:
            return "failed"
        return _PAST_TENSE.get(self.verb, self.verb)

    def row(self) -> Dict[str, str]:
        row = {
            "action": self.action,
            "status": self.status,
            "error": self.error,
            "directory_outcome": self.secondary.value,
            "directory_error": self.secondary_error,
        }
        if self.new_name:
            row["new_name"] = self.new_name
        row.update(self.snapshot)
        return row


_PAST_TENSE = {"delete": "deleted", "retire": "retired", "wipe": "wiped", "rename": "renamed"}


@dataclass
class FilterOutcome:
    eligible: List = field(default_factory=list)
    guard_excluded: List = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
