from helpers import FakeService, make_device, make_group
from intune_cleanup.actions import (
    WIPE_OPTIONS,
    execute_device_actions,
    execute_group_actions,
    plan_renames,
    resolve_new_name,
)
from intune_cleanup.models import (
    DeviceAction,
    GroupAction,
    MatchMode,
    PrimaryOutcome,
    RenamePlan,
    SecondaryOutcome,
)
from intune_cleanup.service import ServiceError
from intune_cleanup.session import Session


def _directory_entry(object_id: str, device_id: str, synced: bool = False) -> dict:
    return {"id": object_id, "deviceId": device_id, "displayName": "PC", "onPremisesSyncEnabled": synced}


def test_partial_failure_does_not_stop_the_loop(live_session, service):
    service.fail["2"] = ServiceError("HTTP 400: Device is not in a state that allows retire")
    devices = [make_device("1"), make_device("2"), make_device("3")]

    results = execute_device_actions(live_session, devices, DeviceAction.RETIRE)

    assert [r.status for r in results] == ["retired", "failed", "retired"]
    assert results[1].error == "HTTP 400: Device is not in a state that allows retire"
    assert results[0].error == ""
    assert [c[1] for c in service.calls if c[0] == "retire_managed_device"] == ["1", "2", "3"]


def test_dispatch_uses_the_matching_service_call(live_session, service):
    execute_device_actions(live_session, [make_device("1")], DeviceAction.DELETE)
    execute_device_actions(live_session, [make_device("2")], DeviceAction.WIPE)
    assert service.calls[0] == ("delete_managed_device", "1")
    assert service.calls[1] == ("wipe_managed_device", "2", WIPE_OPTIONS)


def test_wipe_body_is_fixed():
    assert WIPE_OPTIONS == {
        "keepEnrollmentData": False,
        "keepUserData": False,
        "persistEsimDataPlan": False,
        "useProtectedWipe": False,
    }


def test_hybrid_directory_object_is_never_deleted(live_session, service):
    service.directory["X"] = _directory_entry("obj-x", "X", synced=True)
    results = execute_device_actions(
        live_session, [make_device("1", cross_id="X")], DeviceAction.DELETE,
        directory_requested=True, directory_confirmed=True,
    )
    assert results[0].secondary is SecondaryOutcome.SKIPPED_HYBRID
    assert ("delete_directory_device", "obj-x") not in service.calls


def test_hybrid_wins_in_dry_run(dry_session, service):
    service.directory["X"] = _directory_entry("obj-x", "X", synced=True)
    dry = execute_device_actions(
        dry_session, [make_device("1", cross_id="X")], DeviceAction.RETIRE,
        directory_requested=True, directory_confirmed=True,
    )
    assert dry[0].secondary is SecondaryOutcome.SKIPPED_HYBRID


def test_hybrid_reported_even_when_directory_step_not_confirmed(live_session, service):
    service.directory["X"] = _directory_entry("obj-x", "X", synced=True)
    service.directory["Y"] = _directory_entry("obj-y", "Y", synced=False)
    results = execute_device_actions(
        live_session,
        [make_device("1", cross_id="X"), make_device("2", cross_id="Y")],
        DeviceAction.RETIRE,
        directory_requested=True,
        directory_confirmed=False,
    )
    assert results[0].secondary is SecondaryOutcome.SKIPPED_HYBRID
    assert results[1].secondary is SecondaryOutcome.NOT_ATTEMPTED
    assert not any(c[0] == "delete_directory_device" for c in service.calls)


def test_directory_step_runs_even_if_primary_fails(live_session, service):
    service.fail["1"] = ServiceError("HTTP 404: ManagedDevice not found")
    service.directory["X"] = _directory_entry("obj-x", "X")
    results = execute_device_actions(
        live_session, [make_device("1", cross_id="X")], DeviceAction.DELETE,
        directory_requested=True, directory_confirmed=True,
    )
    assert results[0].outcome is PrimaryOutcome.FAILED
    assert results[0].secondary is SecondaryOutcome.DELETED
    assert ("delete_directory_device", "obj-x") in service.calls


def test_directory_failure_does_not_touch_primary(live_session, service):
    service.directory["X"] = _directory_entry("obj-x", "X")
    service.fail["dir:obj-x"] = ServiceError("HTTP 403: Insufficient privileges")
    results = execute_device_actions(
        live_session, [make_device("1", cross_id="X")], DeviceAction.RETIRE,
        directory_requested=True, directory_confirmed=True,
    )
    assert results[0].status == "retired"
    assert results[0].secondary is SecondaryOutcome.FAILED
    assert results[0].secondary_error == "HTTP 403: Insufficient privileges"


def test_directory_outcomes_not_found_and_no_cross_id(live_session, service):
    results = execute_device_actions(
        live_session,
        [make_device("1", cross_id="missing"), make_device("2", cross_id="")],
        DeviceAction.RETIRE,
        directory_requested=True,
        directory_confirmed=True,
    )
    assert results[0].secondary is SecondaryOutcome.NOT_FOUND
    assert results[1].secondary is SecondaryOutcome.SKIPPED


def test_directory_not_requested_makes_no_lookup(live_session, service):
    results = execute_device_actions(live_session, [make_device("1", cross_id="X")], DeviceAction.RETIRE)
    assert results[0].secondary is SecondaryOutcome.NOT_ATTEMPTED
    assert not any(c[0] == "find_directory_device" for c in service.calls)


def test_dry_run_makes_no_writes_and_is_repeatable():
    service = FakeService(directory={"X": _directory_entry("obj-x", "X")})
    session = Session(tenant_id="t", service=service, dry_run=True)
    devices = [make_device("1", cross_id="X"), make_device("2")]

    first = execute_device_actions(session, devices, DeviceAction.WIPE, True, True)
    second = execute_device_actions(session, devices, DeviceAction.WIPE, True, True)

    assert service.write_calls == []
    assert [r.row() for r in first] == [r.row() for r in second]
    assert first[0].status == "would-wipe"
    assert first[0].secondary is SecondaryOutcome.WOULD_DELETE


def test_result_carries_entity_snapshot(live_session):
    results = execute_device_actions(live_session, [make_device("1", cross_id="X")], DeviceAction.RETIRE)
    row = results[0].row()
    assert row["device_id"] == "1"
    assert row["azure_ad_device_id"] == "X"
    assert row["action"] == "Retire"


def test_resolve_new_name_modes():
    assert resolve_new_name(RenamePlan(MatchMode.PREFIX, "old-", "new-"), "OLD-Sales") == "new-Sales"
    assert resolve_new_name(RenamePlan(MatchMode.PREFIX, "old-", "new-"), "Sales") == "Sales"
    assert resolve_new_name(RenamePlan(MatchMode.SUBSTRING, "temp", "perm"), "Team TEMP temp") == "Team perm perm"
    assert resolve_new_name(RenamePlan(MatchMode.PATTERN, r"^SG-(\d+)", r"GRP-\1"), "SG-42 Ops") == "GRP-42 Ops"


def test_group_delete_and_rename(live_session, service):
    groups = [make_group("1", "old-A"), make_group("2", "old-B")]
    deleted = execute_group_actions(live_session, groups, GroupAction.DELETE)
    assert [r.status for r in deleted] == ["deleted", "deleted"]

    names = plan_renames(RenamePlan(MatchMode.PREFIX, "old-", "new-"), groups)
    renamed = execute_group_actions(live_session, groups, GroupAction.RENAME, names)
    assert [r.status for r in renamed] == ["renamed", "renamed"]
    assert ("rename_group", "1", "new-A") in service.calls
    assert renamed[0].row()["new_name"] == "new-A"


def test_group_rename_to_same_name_is_failed_without_call(live_session, service):
    groups = [make_group("1", "Sales")]
    results = execute_group_actions(live_session, groups, GroupAction.RENAME, {"1": "Sales"})
    assert results[0].outcome is PrimaryOutcome.FAILED
    assert not any(c[0] == "rename_group" for c in service.calls)


def test_group_failure_is_isolated(live_session, service):
    service.fail["2"] = ServiceError("HTTP 400: group is synced from on-premises")
    groups = [make_group("1", "a"), make_group("2", "b"), make_group("3", "c")]
    results = execute_group_actions(live_session, groups, GroupAction.DELETE)
    assert [r.status for r in results] == ["deleted", "failed", "deleted"]
    assert results[1].error == "HTTP 400: group is synced from on-premises"


def test_declined_directory_step_is_not_attempted_except_for_hybrid(live_session, service):
    service.directory["H"] = _directory_entry("obj-h", "H", synced=True)
    service.fail["find:Z"] = ServiceError("HTTP 500: boom")
    devices = [
        make_device("1", cross_id=""),
        make_device("2", cross_id="MISSING"),
        make_device("3", cross_id="Z"),
        make_device("4", cross_id="H"),
    ]

    results = execute_device_actions(
        live_session, devices, DeviceAction.RETIRE, directory_requested=True, directory_confirmed=False
    )

    assert [r.secondary for r in results] == [
        SecondaryOutcome.NOT_ATTEMPTED,
        SecondaryOutcome.NOT_ATTEMPTED,
        SecondaryOutcome.NOT_ATTEMPTED,
        SecondaryOutcome.SKIPPED_HYBRID,
    ]
    assert [r.secondary_error for r in results] == ["", "", "", ""]
    assert [r.row()["directory_outcome"] for r in results[:3]] == ["not-attempted"] * 3
