"""
Run configuration.

Values come from, in order: command-line flags, environment variables,
then interactive prompts for whatever is still missing.
"""

import argparse
import getpass
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .models import (
    DEFAULT_GUARD,
    ComplianceState,
    FilterCriteria,
    GroupCriteria,
    GuardPolicy,
    MatchMode,
    OwnerConstraint,
    RenamePlan,
)
from .prompts import (
    Ask,
    prompt_choice,
    prompt_float,
    prompt_int,
    prompt_list,
    prompt_required,
    prompt_yes_no,
)

ENV_TENANT_ID = "INTUNE_CLEANUP_TENANT_ID"
ENV_CLIENT_ID = "INTUNE_CLEANUP_CLIENT_ID"
ENV_CLIENT_SECRET = "INTUNE_CLEANUP_CLIENT_SECRET"
ENV_LOG_DIR = "INTUNE_CLEANUP_LOG_DIR"

DEFAULT_LOG_DIR = os.path.join(os.path.expanduser("~"), "IntuneCleanupLogs")


@dataclass
class RunConfig:
    mode: str
    tenant_id: str
    client_id: str
    client_secret: str
    dry_run: bool
    guard: Optional[GuardPolicy]
    log_dir: str
    allow_grid: bool
    verbose: bool
    max_writes_before_pause: int = 25
    pause_seconds: float = 5.0
    min_seconds_between_writes: float = 0.2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intune-cleanup",
        description="Preview, select and bulk delete/retire/wipe Intune devices or delete/rename Entra ID groups.",
    )
    parser.add_argument("--mode", choices=("devices", "groups"), help="What to clean up (prompted if omitted)")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Preview only; no changes are made")
    parser.add_argument("--live", dest="dry_run", action="store_false", help="Make changes (typed confirmation still required)")
    parser.add_argument("--no-guard", action="store_true", help="Do not apply the 30-day last check-in guard to devices")
    parser.add_argument("--log-dir", help=f"Where logs and CSV reports go (default {DEFAULT_LOG_DIR})")
    parser.add_argument("--no-grid", action="store_true", help="Always use the console selection table")
    parser.add_argument("--tenant-id", help=f"Tenant id or domain (or set {ENV_TENANT_ID})")
    parser.add_argument("--client-id", help=f"App registration client id (or set {ENV_CLIENT_ID})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.set_defaults(dry_run=None)
    return parser


def load_config(
    argv: Optional[List[str]] = None,
    ask: Ask = input,
    ask_secret: Callable[[str], str] = getpass.getpass,
) -> RunConfig:
    args = build_parser().parse_args(argv)

    mode = args.mode or prompt_choice("Clean up", ("devices", "groups"), "devices", ask=ask)
    tenant_id = args.tenant_id or os.environ.get(ENV_TENANT_ID) or prompt_required("Tenant id or domain", ask=ask)
    client_id = args.client_id or os.environ.get(ENV_CLIENT_ID) or prompt_required("App (client) id", ask=ask)
    client_secret = os.environ.get(ENV_CLIENT_SECRET) or ask_secret("Client secret: ")

    dry_run = args.dry_run
    if dry_run is None:
        dry_run = prompt_yes_no("Dry-run (preview only, no changes)", True, ask=ask)

    config = RunConfig(
        mode=mode,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        dry_run=dry_run,
        guard=None if args.no_guard else DEFAULT_GUARD,
        log_dir=args.log_dir or os.environ.get(ENV_LOG_DIR) or DEFAULT_LOG_DIR,
        allow_grid=not args.no_grid,
        verbose=args.verbose,
    )

    if not dry_run:
        print("\n--- Rate Limiting Configuration (WRITE calls only) ---")
        config.max_writes_before_pause = prompt_int("Max writes before pause (0 = disable pause-by-count)", 25, ask=ask)
        config.pause_seconds = prompt_float("Pause duration in seconds", 5.0, ask=ask)
        config.min_seconds_between_writes = prompt_float("Minimum seconds between writes (0 = no spacing)", 0.2, ask=ask)

    return config


# ──────────────────────────────────────────────────────────────────
# FILTER PROMPTS
# ──────────────────────────────────────────────────────────────────
def _parse_states(values) -> frozenset:
    states = set()
    for v in values:
        state = ComplianceState.parse(v)
        if state is ComplianceState.UNKNOWN and v.strip().lower() != "unknown":
            print(f"Ignoring unknown compliance state '{v}'.")
            continue
        states.add(state)
    return frozenset(states)


def prompt_device_criteria(ask: Ask = input) -> Tuple[FilterCriteria, bool]:
    """Returns the criteria and whether directory objects should also be deleted."""
    print("\n--- Device Filters ---")
    print("Compliance states: " + ", ".join(s.value for s in ComplianceState))
    states = frozenset()
    while not states:
        states = _parse_states(prompt_list("Compliance states to include", ["noncompliant"], ask=ask))
        if not states:
            print("At least one compliance state is required.")

    os_prefixes = prompt_list("OS name prefixes, e.g. Windows,iOS ('*' = all)", [], ask=ask)
    owner = OwnerConstraint(prompt_choice("Owner type", ("any", "company", "personal"), "any", ask=ask))
    min_age = prompt_int("Minimum days since last check-in (0 = no minimum)", 0, ask=ask)
    also_directory = prompt_yes_no("Also delete the matching Entra ID device objects", False, ask=ask)

    criteria = FilterCriteria(
        compliance_states=states,
        os_prefixes=os_prefixes,
        owner=owner,
        min_age_days=min_age,
    )
    return criteria, also_directory


def prompt_group_criteria(ask: Ask = input) -> Tuple[GroupCriteria, Optional[RenamePlan]]:
    """Returns the match criteria and, when the operator wants one, a rename plan."""
    print("\n--- Group Filters ---")
    mode = MatchMode(
        prompt_choice("Match mode", tuple(m.value for m in MatchMode), MatchMode.PREFIX.value, ask=ask)
    )
    if mode is MatchMode.EMPTY:
        return GroupCriteria(mode=mode), None

    text = prompt_required(f"Match text ({mode.value})", ask=ask)
    criteria = GroupCriteria(mode=mode, text=text)

    rename_plan = None
    if prompt_yes_no("Prepare a rename (replace the matched text)", False, ask=ask):
        replacement = ask("Replacement text: ")
        rename_plan = RenamePlan(mode=mode, find=text, replace=replacement)
    return criteria, rename_plan
