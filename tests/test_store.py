# tests/test_store.py

import pytest

import store
from store import TaskPatch, UNSET, ValidationError


def test_task_update_merges_with_existing_row(ctx):
    store.upsert_task("dayshift", "place-1", {"workerName": "Bob"})
    task = store.upsert_task("dayshift", "place-1", {"taskDescription": "x"})

    assert task["workerName"] == "Bob"
    assert task["taskDescription"] == "x"
    assert store.get_task("dayshift", "place-1")["workerName"] == "Bob"


def test_unknown_task_is_empty_dict(ctx):
    assert store.get_task("dayshift", "nope") == {}
    assert store.get_tasks("dayshift") == {}


def test_same_task_id_is_independent_per_shift(ctx):
    store.upsert_task("dayshift", "place-1", {"workerName": "Anna"})
    store.upsert_task("nightshift", "place-1", {"workerName": "Lars", "phase": "2"})

    day = store.get_task("dayshift", "place-1")
    night = store.get_task("nightshift", "place-1")
    assert day["workerName"] == "Anna"
    assert day["phase"] is None
    assert night["workerName"] == "Lars"
    assert night["phase"] == "2"
    assert set(store.get_tasks("nightshift")) == {"place-1"}


def test_new_task_defaults(ctx):
    task = store.upsert_task("dayshift", "place-2", {"drawing": "A-12"})
    assert task["photos"] == []
    assert task["pdfProject"] is None
    assert task["workerName"] is None
    assert task["lastUpdatedAt"]


def test_empty_string_and_null_clear_a_field(ctx):
    store.upsert_task("dayshift", "place-1", {"workerName": "Bob", "phase": "3"})
    task = store.upsert_task("dayshift", "place-1", {"workerName": "", "phase": None})
    assert task["workerName"] is None
    assert task["phase"] is None


def test_description_update_keeps_attachment_pointers(ctx):
    store.set_task_photos("dayshift", "place-1", ["1.png", "2.png"])
    store.set_task_pdf("dayshift", "place-1", "phase", "phase-1.pdf")

    task = store.upsert_task("dayshift", "place-1", {"taskDescription": "Svetsa", "photos": [], "pdfPhase": None})
    assert task["photos"] == ["1.png", "2.png"]
    assert task["pdfPhase"] == "phase-1.pdf"
    assert task["taskDescription"] == "Svetsa"


def test_attachment_update_keeps_description(ctx):
    store.upsert_task("dayshift", "place-1", {"workerName": "Bob"})
    store.set_task_photos("dayshift", "place-1", ["1.png"])
    assert store.get_task("dayshift", "place-1")["workerName"] == "Bob"


def test_update_stamps_last_updated(ctx):
    first = store.upsert_task("dayshift", "place-1", {"workerName": "Bob"})["lastUpdatedAt"]
    second = store.upsert_task("dayshift", "place-1", {})["lastUpdatedAt"]
    assert second >= first


def test_task_patch_only_contains_given_fields():
    patch = TaskPatch.from_json({"workerName2": "Eva", "projectNumber": 4711, "unknown": 1})
    assert patch.columns() == {"worker_name_2": "Eva", "project_number": "4711"}
    assert patch.task_description is UNSET


def test_task_patch_rejects_non_object():
    with pytest.raises(ValidationError):
        TaskPatch.from_json(["workerName"])


def test_workplaces_upsert(ctx):
    store.upsert_workplace("place-1", "Svets")
    store.upsert_workplace("place-1", "Svets 2")
    store.upsert_workplace("place-2", "Lack")
    assert store.get_workplaces() == {
        "place-1": {"displayName": "Svets 2"},
        "place-2": {"displayName": "Lack"},
    }


def test_workplace_requires_name(ctx):
    with pytest.raises(ValidationError):
        store.upsert_workplace("place-1", "  ")


def test_config_roundtrip(ctx):
    assert store.get_config("floorplan_image") is None
    assert store.get_config("floorplan_image", "x") == "x"
    store.set_config("floorplan_image", "floorplan-1.png")
    store.set_config("floorplan_image", "floorplan-2.png")
    assert store.get_config("floorplan_image") == "floorplan-2.png"
    assert store.delete_config("floorplan_image") is True
    assert store.delete_config("floorplan_image") is False


def test_place_count(ctx):
    assert store.get_place_count() == 4
    store.set_place_count(7)
    assert store.get_place_count() == 7
    with pytest.raises(ValidationError):
        store.set_place_count(-1)
    with pytest.raises(ValidationError):
        store.set_place_count("5")


def test_box_position_roundtrip(ctx):
    store.upsert_box_position("place-1", {"x": 10, "y": 20, "width": 250, "height": 120})
    assert store.get_box_positions() == {"place-1": {"x": 10, "y": 20, "width": 250, "height": 120}}


def test_box_position_is_overwritten_wholesale(ctx):
    store.upsert_box_position("place-1", {"x": 10, "y": 20, "width": 250, "height": 120})
    store.upsert_box_position("place-1", {"x": 1.6, "y": 2, "width": 3, "height": 4})
    assert store.get_box_position("place-1") == {"x": 2, "y": 2, "width": 3, "height": 4}
    assert store.get_box_position("place-9") is None


def test_box_position_requires_all_fields(ctx):
    with pytest.raises(ValidationError):
        store.upsert_box_position("place-1", {"x": 10, "y": 20, "width": 250})
    assert store.get_box_positions() == {}


def test_notes_go_to_audit_log(ctx):
    store.upsert_workplace("place-1", "Svets", note="Bytte namn på place-1 till Svets")
    store.upsert_task("dayshift", "place-1", {"workerName": "Bob"})
    logs = store.get_logs()
    assert [entry["action"] for entry in logs] == ["Bytte namn på place-1 till Svets"]


def test_all_tasks_filters_by_shift(ctx):
    store.upsert_task("dayshift", "place-1", {"workerName": "A"})
    store.upsert_task("nightshift", "place-1", {"workerName": "B"})
    assert [t["shift"] for t in store.all_tasks()] == ["dayshift", "nightshift"]
    assert [t["workerName"] for t in store.all_tasks("nightshift")] == ["B"]


def test_ping(ctx):
    store.ping()


@pytest.mark.parametrize("value", [True, ["Bob"], {"name": "Bob"}])
def test_task_patch_rejects_non_scalar_values(value):
    with pytest.raises(ValidationError):
        TaskPatch.from_json({"workerName": value})


def test_task_patch_keeps_numbers_as_text():
    assert TaskPatch.from_json({"phase": 2, "drawing": 1.5}).columns() == {"phase": "2", "drawing": "1.5"}
