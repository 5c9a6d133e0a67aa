"""
Typed-phrase confirmation before anything destructive runs.

    AWAITING_ACTION_CHOICE -> AWAITING_PRIMARY_CONFIRM -> [AWAITING_SECONDARY_CONFIRM] -> CONFIRMED
                                       |
                                       +-> ABORTED (wrong phrase)

Dry-run goes from the action choice straight to CONFIRMED.
A wrong secondary phrase does not abort. It only turns the directory
deletion off for the whole run.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Union

from .models import DeviceAction, GroupAction

logger = logging.getLogger("intune_cleanup.confirm")

Action = Union[DeviceAction, GroupAction]

DEVICE_ACTION_CODES: Dict[str, DeviceAction] = {
    "D": DeviceAction.DELETE,
    "R": DeviceAction.RETIRE,
    "W": DeviceAction.WIPE,
}
DEVICE_DEFAULT_ACTION = DeviceAction.RETIRE

GROUP_ACTION_CODES: Dict[str, GroupAction] = {
    "D": GroupAction.DELETE,
    "R": GroupAction.RENAME,
}
GROUP_DEFAULT_ACTION = GroupAction.DELETE

SECONDARY_PHRASE = "DELETE DIRECTORY"


def primary_phrase(action) -> str:
    return action.value.upper()


class ConfirmState(str, Enum):
    AWAITING_ACTION_CHOICE = "awaiting-action-choice"
    AWAITING_PRIMARY_CONFIRM = "awaiting-primary-confirm"
    AWAITING_SECONDARY_CONFIRM = "awaiting-secondary-confirm"
    CONFIRMED = "confirmed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Decision:
    state: ConfirmState
    action: Optional[Action] = None
    secondary: bool = False

    @property
    def confirmed(self) -> bool:
        return self.state is ConfirmState.CONFIRMED


class ConfirmationProtocol:
    def __init__(
        self,
        codes: Dict[str, Action],
        default: Action,
        dry_run: bool,
        secondary_requested: bool = False,
        ask: Callable[[str], str] = input,
    ):
        self.codes = codes
        self.default = default
        self.dry_run = dry_run
        self.secondary_requested = secondary_requested
        self.ask = ask
        self.state = ConfirmState.AWAITING_ACTION_CHOICE
        self.action: Optional[Action] = None
        self.secondary = False

    def _choose_action(self) -> None:
        options = " / ".join(f"[{code}] {action.value}" for code, action in self.codes.items())
        default_code = next(code for code, action in self.codes.items() if action is self.default)
        while True:
            raw = self.ask(f"Action {options} [{default_code}]: ").strip().upper()
            if not raw:
                self.action = self.default
                break
            if raw in self.codes:
                self.action = self.codes[raw]
                break
            logger.warning("Unknown action code '%s'.", raw)

        logger.info("Action chosen: %s", self.action.value)
        if self.dry_run:
            self.secondary = self.secondary_requested
            logger.info("Dry-run: typed confirmations are not required.")
            self.state = ConfirmState.CONFIRMED
        else:
            self.state = ConfirmState.AWAITING_PRIMARY_CONFIRM

    def _confirm_primary(self) -> None:
        phrase = primary_phrase(self.action)
        typed = self.ask(f"Type '{phrase}' to proceed, or anything else to exit: ").strip()
        if typed != phrase:
            logger.info("User did not confirm %s. Exiting without changes.", self.action.value)
            self.state = ConfirmState.ABORTED
        elif self.secondary_requested:
            self.state = ConfirmState.AWAITING_SECONDARY_CONFIRM
        else:
            self.state = ConfirmState.CONFIRMED

    def _confirm_secondary(self) -> None:
        typed = self.ask(
            f"Type '{SECONDARY_PHRASE}' to also delete the matching directory device objects: "
        ).strip()
        if typed == SECONDARY_PHRASE:
            self.secondary = True
        else:
            logger.info("Directory deletion not confirmed; it will not be attempted.")
        self.state = ConfirmState.CONFIRMED

    def run(self) -> Decision:
        steps = {
            ConfirmState.AWAITING_ACTION_CHOICE: self._choose_action,
            ConfirmState.AWAITING_PRIMARY_CONFIRM: self._confirm_primary,
            ConfirmState.AWAITING_SECONDARY_CONFIRM: self._confirm_secondary,
        }
        while self.state in steps:
            steps[self.state]()
        return Decision(state=self.state, action=self.action, secondary=self.secondary)


def confirm_device_action(dry_run: bool, secondary_requested: bool, ask: Callable[[str], str] = input) -> Decision:
    return ConfirmationProtocol(DEVICE_ACTION_CODES, DEVICE_DEFAULT_ACTION, dry_run, secondary_requested, ask).run()


def confirm_group_action(dry_run: bool, rename_available: bool, ask: Callable[[str], str] = input) -> Decision:
    codes = dict(GROUP_ACTION_CODES)
    if not rename_available:
        codes.pop("R")
    return ConfirmationProtocol(codes, GROUP_DEFAULT_ACTION, dry_run, False, ask).run()
