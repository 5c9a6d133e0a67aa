"""Console prompts. Empty input always means "take the default shown in brackets"."""

from typing import Callable, Sequence, Tuple

Ask = Callable[[str], str]


def prompt_int(prompt: str, default: int, ask: Ask = input, minimum: int = 0) -> int:
    while True:
        raw = ask(f"{prompt} [{default}]: ").strip()
        if raw == "":
            return default
        try:
            value = int(raw)
        except ValueError:
            print(f"'{raw}' is not a whole number.")
            continue
        if value < minimum:
            print(f"Value must be at least {minimum}.")
            continue
        return value


def prompt_float(prompt: str, default: float, ask: Ask = input) -> float:
    while True:
        raw = ask(f"{prompt} [{default}]: ").strip()
        if raw == "":
            return default
        try:
            value = float(raw)
        except ValueError:
            print(f"'{raw}' is not a number.")
            continue
        if value < 0:
            print("Value must be non-negative.")
            continue
        return value


def prompt_yes_no(prompt: str, default: bool, ask: Ask = input) -> bool:
    hint = "Y/n" if default else "y/N"
    while True:
        raw = ask(f"{prompt} [{hint}]: ").strip().lower()
        if raw == "":
            return default
        if raw in ("y", "yes"):
            return True
        if raw in ("n", "no"):
            return False
        print("Please answer y or n.")


def prompt_choice(prompt: str, choices: Sequence[str], default: str, ask: Ask = input) -> str:
    options = "/".join(choices)
    while True:
        raw = ask(f"{prompt} ({options}) [{default}]: ").strip().lower()
        if raw == "":
            return default
        if raw in choices:
            return raw
        print(f"Choose one of: {options}")


def prompt_list(prompt: str, default: Sequence[str], ask: Ask = input) -> Tuple[str, ...]:
    """Comma-separated values. Entering '*' clears the list."""
    shown = ",".join(default) if default else "all"
    raw = ask(f"{prompt} [{shown}]: ").strip()
    if raw == "":
        return tuple(default)
    if raw == "*":
        return ()
    return tuple(v.strip() for v in raw.split(",") if v.strip())


def prompt_required(prompt: str, ask: Ask = input) -> str:
    while True:
        raw = ask(f"{prompt}: ").strip()
        if raw:
            return raw
        print("A value is required.")
