"""
Selection of candidates by the operator.

Two surfaces share one interface:
- GridSelectionSurface: a Tk window with a multi-select table (needs a display)
- IndexedSelectionSurface: a numbered console table, answer "all" or "1,3,7"

choose_surface() probes once at startup and returns whichever can run here.
"""

import logging
import os
import sys
from typing import Callable, List, Optional, Protocol, Sequence

import pandas as pd

logger = logging.getLogger("intune_cleanup.selection")


class SelectionSurface(Protocol):
    """Show candidates, return the subset the operator picked (possibly empty)."""

    name: str

    def select(self, candidates: Sequence, columns: Sequence[str], title: str) -> List:
        ...


def candidate_table(candidates: Sequence, columns: Sequence[str]) -> pd.DataFrame:
    rows = [c.snapshot() for c in candidates]
    df = pd.DataFrame(rows, columns=list(columns))
    df.index = range(1, len(df) + 1)
    df.index.name = "#"
    return df


# ──────────────────────────────────────────────────────────────────
# INDEXED (CONSOLE) SURFACE
# ──────────────────────────────────────────────────────────────────
def parse_index_selection(raw: str, count: int) -> Optional[List[int]]:
    """
    "all" -> every index. "1,3" -> [0, 2].
    Returns None when a token is not a positive integer.
    Indices past the end of the list are ignored.
    """
    text = raw.strip()
    if not text:
        return []
    if text.lower() == "all":
        return list(range(count))

    picked: List[int] = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        if not (token.isascii() and token.isdecimal()) or int(token) < 1:
            return None
        idx = int(token) - 1
        if idx >= count:
            logger.debug("Selection index %s is out of range (1-%d); ignored.", token, count)
            continue
        if idx not in picked:
            picked.append(idx)
    return picked


class IndexedSelectionSurface(SelectionSurface):
    name = "indexed"

    def __init__(self, ask: Callable[[str], str] = input, show: Callable[[str], None] = print):
        self.ask = ask
        self.show = show

    def select(self, candidates: Sequence, columns: Sequence[str], title: str) -> List:
        if not candidates:
            return []
        self.show(f"\n=== {title} ({len(candidates)} candidates) ===")
        with pd.option_context("display.max_rows", None, "display.max_columns", None, "display.width", 200):
            self.show(candidate_table(candidates, columns).to_string())

        while True:
            raw = self.ask("\nSelect rows: 'all', comma-separated numbers (e.g. 1,3), or Enter for none: ")
            picked = parse_index_selection(raw, len(candidates))
            if picked is not None:
                return [candidates[i] for i in picked]
            self.show("Only 'all' or positive whole numbers separated by commas are accepted.")


# ──────────────────────────────────────────────────────────────────
# GRID (TK) SURFACE
# ──────────────────────────────────────────────────────────────────
class GridSelectionSurface(SelectionSurface):
    name = "grid"

    def select(self, candidates: Sequence, columns: Sequence[str], title: str) -> List:
        if not candidates:
            return []

        import tkinter as tk
        from tkinter import ttk

        chosen: List = []
        root = tk.Tk()
        root.title(f"{title} ({len(candidates)} candidates)")
        root.geometry("1200x600")

        frame = ttk.Frame(root, padding=6)
        frame.pack(fill="both", expand=True)

        tree = ttk.Treeview(frame, columns=list(columns), show="headings", selectmode="extended")
        for col in columns:
            tree.heading(col, text=col)
            tree.column(col, width=140, stretch=True)

        # iid -> original object, so the caller gets the full entity back
        by_iid = {}
        for i, cand in enumerate(candidates):
            snap = cand.snapshot()
            iid = str(i)
            by_iid[iid] = cand
            tree.insert("", "end", iid=iid, values=[snap.get(c, "") for c in columns])

        vsb = ttk.Scrollbar(frame, orient="vertical", command=tree.yview)
        tree.configure(yscrollcommand=vsb.set)
        tree.pack(side="left", fill="both", expand=True)
        vsb.pack(side="right", fill="y")

        buttons = ttk.Frame(root, padding=6)
        buttons.pack(fill="x")

        def on_ok():
            chosen.extend(by_iid[iid] for iid in sorted(tree.selection(), key=int))
            root.destroy()

        def on_select_all():
            tree.selection_set(tree.get_children())

        ttk.Button(buttons, text="OK", command=on_ok).pack(side="right", padx=4)
        ttk.Button(buttons, text="Cancel", command=root.destroy).pack(side="right", padx=4)
        ttk.Button(buttons, text="Select all", command=on_select_all).pack(side="left", padx=4)

        root.mainloop()
        return chosen


def grid_available() -> bool:
    if sys.platform.startswith("linux") and not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
        return False
    try:
        import tkinter as tk
    except ImportError:
        return False
    try:
        probe = tk.Tk()
    except tk.TclError:
        return False
    probe.destroy()
    return True


def choose_surface(allow_grid: bool = True) -> SelectionSurface:
    if allow_grid and grid_available():
        logger.info("Selection surface: grid window")
        return GridSelectionSurface()
    logger.info("Selection surface: console (indexed)")
    return IndexedSelectionSurface()
