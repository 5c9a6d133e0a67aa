"""
OVERVIEW:

Operator tool for bulk remediation in Microsoft Intune / Entra ID. It pulls the
managed devices (or directory groups) of one tenant, filters them, shows the
candidates for selection, and after a typed confirmation runs one action on
the selected items. Every attempted item is written to a timestamped CSV.

Devices: Delete / Retire / Wipe, optionally also deleting the Entra ID device
object. Hybrid-joined (on-premises synced) directory objects are never deleted.
A 30-day guard keeps recently active devices out of selection.

Groups: Delete, or Rename using a prepared find/replace plan. Candidates are
found by display name (prefix / substring / regex) or by having no members.

Dry-run (the default) does every read and decision step and records what
would have happened, without changing anything.

Exit codes:
  0  finished, nothing to do, nothing selected, or not confirmed
  1  the tenant returned no devices/groups
  2  setup failure or unexpected error
  130 interrupted
"""

import sys
from typing import Callable, List, Optional

from .config import RunConfig, load_config, prompt_device_criteria, prompt_group_criteria
from .graph import GraphService
from .logging_setup import setup_logging
from .pipeline import RunReport, run_device_cleanup, run_group_cleanup
from .selection import choose_surface
from .service import DirectoryService, EmptyInventoryError, SetupError
from .session import Session
from .throttle import WriteRateLimiter


def connect(config: RunConfig, limiter: WriteRateLimiter) -> DirectoryService:
    return GraphService.connect(config.tenant_id, config.client_id, config.client_secret, limiter)


def run(
    config: RunConfig,
    service_factory: Callable[[RunConfig, WriteRateLimiter], DirectoryService] = connect,
    ask: Callable[[str], str] = input,
) -> int:
    logger, log_path = setup_logging(config.log_dir, verbose=config.verbose)
    logger.info("=== Intune / Entra ID bulk cleanup: %s ===", config.mode)
    logger.info("Tenant: %s | Mode: %s", config.tenant_id, "DRY-RUN" if config.dry_run else "LIVE")

    limiter = WriteRateLimiter(
        logger=logger,
        max_writes_before_pause=config.max_writes_before_pause,
        pause_seconds=config.pause_seconds,
        min_seconds_between_writes=config.min_seconds_between_writes,
    )

    try:
        service = service_factory(config, limiter)
        session = Session(tenant_id=config.tenant_id, service=service, dry_run=config.dry_run)
        surface = choose_surface(config.allow_grid)

        report: RunReport
        if config.mode == "devices":
            criteria, also_directory = prompt_device_criteria(ask=ask)
            report = run_device_cleanup(
                session,
                criteria,
                config.guard,
                surface,
                config.log_dir,
                directory_requested=also_directory,
                ask=ask,
            )
        else:
            criteria, rename_plan = prompt_group_criteria(ask=ask)
            report = run_group_cleanup(session, criteria, surface, config.log_dir, rename_plan=rename_plan, ask=ask)

    except SetupError as e:
        logger.error("Setup failed: %s", e)
        logger.error("Exiting. Log file: %s", log_path)
        return 2
    except EmptyInventoryError as e:
        logger.error("%s Nothing was changed and no report was written.", e)
        logger.info("Log: %s", log_path)
        return 1
    except KeyboardInterrupt:
        logger.warning("Aborted by user.")
        return 130
    except Exception as e:
        logger.exception("Unhandled exception: %s", e)
        logger.error("Exiting. Log file: %s", log_path)
        return 2

    logger.info("Run finished: %s", report.status.value)
    if report.action_log:
        logger.info("Action log : %s", report.action_log)
    if report.guard_log:
        logger.info("Guard log  : %s", report.guard_log)
    logger.info("Write calls made: %d", limiter.write_count)
    logger.info("Log: %s", log_path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config(argv)
    except KeyboardInterrupt:
        print("\nAborted by user.")
        return 130
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
