"""
Tests for dispatcher.py - executing agent actions against the store.
"""
import pytest
import sys
import os
from typing import get_args

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import TypeAdapter

import database
import dispatcher as dispatcher_module
from conftest import USER, OTHER_USER
from dispatcher import ActionDispatcher
from models import AgentAction, ItemCreate

adapter = TypeAdapter(AgentAction)


def act(action_type, **data):
    """Build an action the same way the parser does, from the JSON grammar."""
    return adapter.validate_python({"type": action_type, "data": data})


def make(title, user_id=USER, **fields):
    return database.create_item(user_id, ItemCreate(title=title, **fields))


def activity(action=None):
    return [r for r in database.list_activity(USER) if action is None or r.action == action]


class TestDispatchTable:
    """Every action variant has a handler."""

    def test_all_variants_handled(self, test_db):
        variants = set(get_args(get_args(AgentAction)[0]))
        assert variants == set(ActionDispatcher()._handlers)

    def test_unhandled_variant_detected(self, monkeypatch):
        monkeypatch.setattr(ActionDispatcher, "__init__", lambda self, clock=None: setattr(self, "_handlers", {}))
        with pytest.raises(RuntimeError):
            dispatcher_module._check_handlers_cover_actions()

    def test_missing_user(self, dispatcher):
        result = dispatcher.execute(act("respond", message="hi"), "")
        assert result.success is False


class TestCreateItem:
    """create_item defaulting and date normalization."""

    def test_defaults(self, dispatcher):
        result = dispatcher.execute(act("create_item", title="Buy milk"), USER)

        assert result.success is True
        item = result.data
        assert item.type == "task"
        assert item.priority == "medium"
        assert item.status == "not_started"
        assert item.tags == []
        assert item.due_at is None

    def test_logs_item_created(self, dispatcher):
        result = dispatcher.execute(act("create_item", title="Buy milk"), USER)

        records = activity("item_created")
        assert len(records) == 1
        assert records[0].item_id == result.data.id

    def test_due_date_normalized(self, dispatcher):
        result = dispatcher.execute(act("create_item", title="Pay rent", dueAt="2025-03-01"), USER)
        assert result.data.due_at == "2025-03-01T00:00:00+00:00"

    def test_unparseable_due_date_dropped(self, dispatcher):
        result = dispatcher.execute(act("create_item", title="Someday", dueAt="next blue moon"), USER)

        assert result.success is True
        assert result.data.due_at is None


class TestSingleItemMutations:
    """Resolve first, fail fast, log the delta."""

    @pytest.mark.parametrize("action_type,data", [
        ("update_item", {"itemId": "ghost", "updates": {"title": "x"}}),
        ("delete_item", {"itemId": "ghost"}),
        ("move_item", {"itemId": "ghost", "toType": "school"}),
        ("reschedule", {"itemId": "ghost", "newDueAt": "2025-03-01"}),
        ("prioritize", {"itemId": "ghost", "priority": "urgent"}),
        ("add_label", {"itemId": "ghost", "labelId": "work"}),
        ("remove_label", {"itemId": "ghost", "labelId": "work"}),
    ])
    def test_not_found_fails_without_effects(self, dispatcher, action_type, data):
        make("Real item")
        database.create_label(USER, "work", "#3b82f6")
        before = activity()

        result = dispatcher.execute(act(action_type, **data), USER)

        assert result.success is False
        assert result.message == "Item not found: ghost"
        assert activity() == before
        assert [i.title for i in database.list_items(USER)] == ["Real item"]

    def test_update_item(self, dispatcher):
        item = make("Essay")
        result = dispatcher.execute(
            act("update_item", itemId="essay", updates={"status": "in_progress", "priority": "high"}), USER
        )

        assert result.success is True
        assert database.get_item(item.id, USER).status == "in_progress"
        records = activity("item_updated")
        assert records[0].data == {"status": "in_progress", "priority": "high"}

    def test_update_item_records_applied_fields_only(self, dispatcher):
        make("Essay", priority="high")
        dispatcher.execute(
            act("update_item", itemId="Essay", updates={"priority": "high", "status": "in_progress"}), USER
        )

        assert activity("item_updated")[0].data == {"status": "in_progress"}

    def test_update_item_to_current_value_writes_no_record(self, dispatcher):
        item = make("Essay", priority="high")
        result = dispatcher.execute(act("update_item", itemId="Essay", updates={"priority": "high"}), USER)

        assert result.success is True
        assert database.get_item(item.id, USER).updated_at == item.updated_at
        assert activity("item_updated") == []

    def test_prioritize_to_current_value_writes_no_record(self, dispatcher):
        make("Taxes", priority="urgent")
        result = dispatcher.execute(act("prioritize", itemId="Taxes", priority="urgent"), USER)

        assert result.success is True
        assert activity("item_prioritized") == []

    def test_update_item_without_changes(self, dispatcher):
        make("Essay")
        result = dispatcher.execute(act("update_item", itemId="Essay", updates={}), USER)
        assert result.success is False

    def test_delete_item(self, dispatcher):
        item = make("Old note")
        result = dispatcher.execute(act("delete_item", itemId="old note"), USER)

        assert result.success is True
        assert database.get_item(item.id, USER) is None
        assert activity("item_deleted")[0].item_id == item.id

    def test_move_item(self, dispatcher):
        item = make("Study group")
        result = dispatcher.execute(act("move_item", itemId="Study group", toType="school"), USER)

        assert result.success is True
        assert database.get_item(item.id, USER).type == "school"
        assert activity("item_moved")[0].data["type"] == "school"

    def test_prioritize(self, dispatcher):
        item = make("Taxes")
        dispatcher.execute(act("prioritize", itemId="taxes", priority="urgent"), USER)

        assert database.get_item(item.id, USER).priority == "urgent"
        assert activity("item_prioritized")[0].data == {"priority": "urgent"}

    def test_reschedule(self, dispatcher):
        item = make("Pay rent")
        result = dispatcher.execute(act("reschedule", itemId="Pay rent", newDueAt="2025-03-01"), USER)

        assert result.success is True
        assert database.get_item(item.id, USER).due_at == "2025-03-01T00:00:00+00:00"
        assert activity("item_rescheduled")[0].data["due_at"] == "2025-03-01T00:00:00+00:00"

    def test_reschedule_invalid_date(self, dispatcher):
        item = make("Pay rent")
        result = dispatcher.execute(act("reschedule", itemId="Pay rent", newDueAt="someday"), USER)

        assert result.success is False
        assert result.message == "Invalid date format"
        assert database.get_item(item.id, USER).due_at is None
        assert activity("item_rescheduled") == []

    def test_cannot_touch_other_users_items(self, dispatcher):
        theirs = make("Shared name", user_id=OTHER_USER)
        result = dispatcher.execute(act("delete_item", itemId="Shared name"), USER)

        assert result.success is False
        assert database.get_item(theirs.id, OTHER_USER) is not None


class TestMarkComplete:
    """Each identifier resolves independently."""

    def test_partial_resolution(self, dispatcher):
        item = make("Task A")
        result = dispatcher.execute(act("mark_complete", itemIds=["Task A", "nonexistent-xyz"]), USER)

        assert result.success is True
        assert [i.id for i in result.data["completed"]] == [item.id]
        assert result.data["not_found"] == ["nonexistent-xyz"]
        assert database.get_item(item.id, USER).status == "completed"
        assert len(activity("item_completed")) == 1

    def test_already_completed_writes_no_record(self, dispatcher):
        item = make("Done already", status="completed")
        result = dispatcher.execute(act("mark_complete", itemIds=["Done already"]), USER)

        assert [i.id for i in result.data["completed"]] == [item.id]
        assert activity("item_completed") == []

    def test_all_missing_fails(self, dispatcher):
        result = dispatcher.execute(act("mark_complete", itemIds=["ghost"]), USER)

        assert result.success is False
        assert result.data["not_found"] == ["ghost"]

    def test_multiple(self, dispatcher):
        make("Wash car")
        make("Walk dog")
        result = dispatcher.execute(act("mark_complete", itemIds=["Wash car", "Walk dog"]), USER)

        assert len(result.data["completed"]) == 2
        assert result.message == "Marked 2 item(s) as complete"


class TestLabels:
    """create_label, add_label, remove_label."""

    def test_create_label(self, dispatcher):
        result = dispatcher.execute(act("create_label", name="work"), USER)

        assert result.success is True
        assert result.data.color == "#6b7280"
        assert [l.name for l in database.list_labels(USER)] == ["work"]

    def test_add_label_by_name(self, dispatcher):
        item = make("Report")
        label = database.create_label(USER, "Work", "#3b82f6")
        result = dispatcher.execute(act("add_label", itemId="Report", labelId="work"), USER)

        assert result.success is True
        assert [l.id for l in database.get_item_labels(item.id, USER)] == [label.id]
        assert activity("label_added")[0].data["label_id"] == label.id

    def test_add_label_by_id(self, dispatcher):
        item = make("Report")
        label = database.create_label(USER, "work", "#3b82f6")
        dispatcher.execute(act("add_label", itemId="Report", labelId=label.id), USER)

        assert [l.id for l in database.get_item_labels(item.id, USER)] == [label.id]

    def test_add_unknown_label(self, dispatcher):
        make("Report")
        result = dispatcher.execute(act("add_label", itemId="Report", labelId="nope"), USER)

        assert result.success is False
        assert result.message == "Label not found: nope"

    def test_remove_label(self, dispatcher):
        item = make("Report")
        label = database.create_label(USER, "work", "#3b82f6")
        database.add_label_to_item(item.id, label.id)

        result = dispatcher.execute(act("remove_label", itemId="Report", labelId="work"), USER)
        assert result.success is True
        assert database.get_item_labels(item.id, USER) == []
        assert len(activity("label_removed")) == 1


class TestReads:
    """list_items and search_items are read-only."""

    def test_list_filters_and_limit(self, dispatcher):
        for n in range(12):
            make(f"Task {n}")
        make("Sync", type="meeting")

        result = dispatcher.execute(act("list_items", type="task"), USER)
        assert len(result.data) == 10
        assert all(i.type == "task" for i in result.data)

        result = dispatcher.execute(act("list_items", type="task", limit=3), USER)
        assert len(result.data) == 3

    def test_search_title_details_tags(self, dispatcher):
        make("Quarterly report")
        make("Email", details="send the report to Sam")
        make("Slides", tags=["report-prep"])
        make("Unrelated")

        result = dispatcher.execute(act("search_items", query="REPORT"), USER)
        assert sorted(i.title for i in result.data) == ["Email", "Quarterly report", "Slides"]

    def test_reads_are_idempotent(self, dispatcher):
        make("Late", due_at="2025-01-10T00:00:00+00:00")
        make("Soon", due_at="2025-02-03T00:00:00+00:00", type="meeting")
        make("Done", status="completed")

        for action in (
            act("list_items"),
            act("search_items", query="o"),
            act("get_summary", period="week"),
            act("get_analytics", days=30),
        ):
            first = dispatcher.execute(action, USER)
            second = dispatcher.execute(action, USER)
            assert first == second
        assert activity() == []


class TestBatch:
    """batch_update and bulk_create apply per item."""

    def test_batch_update_and_semantics(self, dispatcher):
        match = make("Match", type="task", status="not_started")
        wrong_status = make("Wrong status", type="task", status="in_progress")
        wrong_type = make("Wrong type", type="meeting", status="not_started")

        result = dispatcher.execute(
            act("batch_update", filter={"type": "task", "status": "not_started"}, updates={"priority": "high"}),
            USER,
        )

        assert result.data["count"] == 1
        assert database.get_item(match.id, USER).priority == "high"
        assert database.get_item(wrong_status.id, USER).priority == "medium"
        assert database.get_item(wrong_type.id, USER).priority == "medium"
        assert [r.item_id for r in activity("item_updated")] == [match.id]

    def test_batch_update_overdue_filter(self, dispatcher):
        late = make("Late", due_at="2025-01-10T00:00:00+00:00")
        make("Future", due_at="2025-03-10T00:00:00+00:00")
        make("No date")

        result = dispatcher.execute(
            act("batch_update", filter={"overdue": True}, updates={"dueAt": "2025-02-05"}), USER
        )

        assert [u["id"] for u in result.data["updated"]] == [late.id]
        assert database.get_item(late.id, USER).due_at == "2025-02-05T00:00:00+00:00"

    def test_batch_update_one_record_per_item(self, dispatcher):
        for n in range(3):
            make(f"Task {n}")
        dispatcher.execute(act("batch_update", updates={"status": "blocked"}), USER)

        assert len(activity("item_updated")) == 3
        assert all(i.status == "blocked" for i in database.list_items(USER))

    def test_batch_update_skips_records_for_unchanged_items(self, dispatcher):
        already = make("Already blocked", status="blocked")
        changed = make("Open")
        result = dispatcher.execute(act("batch_update", updates={"status": "blocked"}), USER)

        assert result.data["count"] == 2
        records = activity("item_updated")
        assert [r.item_id for r in records] == [changed.id]
        assert records[0].data == {"status": "blocked"}
        assert already.id not in [r.item_id for r in records]

    def test_batch_update_invalid_date(self, dispatcher):
        make("Task")
        result = dispatcher.execute(act("batch_update", updates={"dueAt": "whenever"}), USER)
        assert result.success is False

    def test_bulk_create(self, dispatcher):
        result = dispatcher.execute(
            act("bulk_create", items=[
                {"title": "Read chapter 1", "type": "school"},
                {"title": "Standup", "type": "meeting", "dueAt": "tomorrow 9am"},
                {"title": "Plain"},
            ]),
            USER,
        )

        assert result.data["count"] == 3
        assert len(activity("item_created")) == 3
        items = {i.title: i for i in database.list_items(USER)}
        assert items["Read chapter 1"].type == "school"
        assert items["Plain"].priority == "medium"
        # Dates are stored as given
        assert items["Standup"].due_at == "tomorrow 9am"


class TestSummaryAndAnalytics:
    """Windowed reports; FIXED_NOW is 2025-02-01 12:00 UTC."""

    def test_reschedule_then_month_summary(self, dispatcher):
        dispatcher.execute(act("create_item", title="Pay rent"), USER)
        dispatcher.execute(act("reschedule", itemId="Pay rent", newDueAt="2025-03-01"), USER)

        result = dispatcher.execute(act("get_summary", period="month"), USER)

        upcoming = result.data["upcoming_due"]
        assert [i.title for i in upcoming] == ["Pay rent"]
        assert upcoming[0].due_at == "2025-03-01T00:00:00+00:00"

    def test_summary_window_today(self, dispatcher):
        make("Due this morning", due_at="2025-02-01T08:00:00+00:00", status="completed")
        make("Due yesterday", due_at="2025-01-31T08:00:00+00:00")

        stats = dispatcher.execute(act("get_summary"), USER).data["stats"]
        assert stats["total"] == 1
        assert stats["completed"] == 1

    def test_summary_week_counts_overdue(self, dispatcher):
        make("Late", due_at="2025-01-30T00:00:00+00:00")
        make("Long ago", due_at="2025-01-01T00:00:00+00:00")

        stats = dispatcher.execute(act("get_summary", period="week"), USER).data["stats"]
        assert stats["total"] == 1
        assert stats["overdue"] == 1
        assert stats["not_started"] == 1

    def test_summary_upcoming_not_window_bound(self, dispatcher):
        make("Next week", due_at="2025-02-08T00:00:00+00:00")

        result = dispatcher.execute(act("get_summary", period="today"), USER)
        assert result.data["stats"]["total"] == 0
        assert [i.title for i in result.data["upcoming_due"]] == ["Next week"]

    def test_analytics(self, dispatcher):
        make("Late", due_at="2025-01-20T00:00:00+00:00", priority="high")
        make("Open", priority="low")
        make("Finished", type="meeting", status="completed", priority="urgent")

        # created_at comes from the wall clock, so use the real one here
        analytics = ActionDispatcher().execute(act("get_analytics", days=7), USER).data
        assert analytics["overview"]["created"] == 3
        assert analytics["overview"]["completed"] == 1
        assert analytics["overview"]["completion_rate"] == 33
        assert analytics["by_type"] == {"task": 2, "meeting": 1, "school": 0}
        assert analytics["by_priority"] == {"urgent": 0, "high": 1, "medium": 0, "low": 1}
        assert analytics["overview"]["overdue"] == 1
        assert analytics["overdue_items"][0]["title"] == "Late"
        assert analytics["overdue_items"][0]["days_overdue"] > 0


class TestPassThrough:
    """Actions with no item mutation."""

    def test_navigate(self, dispatcher):
        result = dispatcher.execute(act("navigate", to="/tasks"), USER)

        assert result.success is True
        assert result.navigate == "/tasks"
        assert activity() == []

    def test_respond(self, dispatcher):
        result = dispatcher.execute(act("respond", message="Hello!"), USER)
        assert result.message == "Hello!"

    def test_clear_all_notifications(self, dispatcher):
        make("A", due_at="2025-03-01T00:00:00+00:00")
        make("B", due_at="2025-03-02T00:00:00+00:00")

        result = dispatcher.execute(act("clear_notifications", all=True), USER)
        assert result.success is True
        assert result.data["cleared"] == 2
        assert all(n.delivered_at for n in database.list_all_notifications(USER))

    def test_clear_one_notification(self, dispatcher):
        notification = database.create_notification(USER, "Ping", "2025-03-01T00:00:00+00:00")
        result = dispatcher.execute(act("clear_notifications", notificationId=notification.id), USER)

        assert result.success is True
        assert database.list_all_notifications(USER)[0].delivered_at is not None

    def test_clear_nothing_specified(self, dispatcher):
        result = dispatcher.execute(act("clear_notifications"), USER)

        assert result.success is False
        assert result.message == "No notification specified"

    def test_start_focus_defaults(self, dispatcher):
        result = dispatcher.execute(act("start_focus"), USER)

        assert result.success is True
        assert result.data["duration"] == 25
        assert result.data["item_id"] is None
        assert result.data["ends_at"] == "2025-02-01T12:25:00+00:00"
        assert result.navigate == "/dashboard?focus=true"

    def test_start_focus_with_item(self, dispatcher):
        item = make("Write thesis")
        result = dispatcher.execute(act("start_focus", itemId="thesis", duration=50), USER)

        assert result.data["item_id"] == item.id
        assert result.data["duration"] == 50

    def test_start_focus_missing_item_tolerated(self, dispatcher):
        result = dispatcher.execute(act("start_focus", itemId="ghost"), USER)

        assert result.success is True
        assert result.data["item_id"] is None


class TestErrorBoundary:
    """Unexpected failures become failed results."""

    def test_store_exception_is_caught(self, dispatcher, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(database, "create_item", boom)
        result = dispatcher.execute(act("create_item", title="Anything"), USER)

        assert result.success is False
        assert result.message == "disk on fire"

    def test_empty_exception_message(self, dispatcher, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError()

        monkeypatch.setattr(database, "list_items", boom)
        result = dispatcher.execute(act("list_items"), USER)

        assert result.success is False
        assert result.message == "Action failed"
