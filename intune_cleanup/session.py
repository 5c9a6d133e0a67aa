from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from .service import DirectoryService


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """Everything one run needs, passed explicitly instead of living in module globals."""

    tenant_id: str
    service: DirectoryService
    dry_run: bool = True
    clock: Callable[[], datetime] = field(default=utc_now)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def mode_label(self) -> str:
        return "DRY-RUN" if self.dry_run else "LIVE"
