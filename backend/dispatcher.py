"""
Executes parsed agent actions against the store.

execute() is the error boundary for the agent: every action comes back as an
ActionResult, never an exception. Actions that target an existing item go
through resolve_item() first and fail fast with "Item not found: ..." before
touching anything. State changes append an activity record holding the delta
that was applied; an update that changes no field records nothing.

Batch actions (mark_complete, batch_update, bulk_create) are applied item by
item with no surrounding transaction; a failure part-way leaves earlier
changes in place and the result reports what was done.
"""
import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional, get_args

import database
from context import is_overdue, upcoming_items
from models import (
    ActionResult,
    AddLabelAction,
    AgentAction,
    BatchUpdateAction,
    BulkCreateAction,
    ClearNotificationsAction,
    CreateItemAction,
    CreateLabelAction,
    DeleteItemAction,
    GetAnalyticsAction,
    GetSummaryAction,
    Item,
    ItemCreate,
    Label,
    ListItemsAction,
    MarkCompleteAction,
    MoveItemAction,
    NavigateAction,
    PrioritizeAction,
    RemoveLabelAction,
    RescheduleAction,
    RespondAction,
    SearchItemsAction,
    StartFocusAction,
    UpdateItemAction,
)
from resolver import resolve_item
from timeutil import normalize_date, parse_datetime, to_iso, utcnow

logger = logging.getLogger(__name__)

FOCUS_PATH = "/dashboard?focus=true"
PRIORITY_LEVELS = ("urgent", "high", "medium", "low")
ITEM_TYPES = ("task", "meeting", "school")


def _not_found(identifier: str) -> ActionResult:
    return ActionResult(success=False, message=f"Item not found: {identifier}")


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last valid day, e.g. Mar 31 -> Feb 28
    for day in range(moment.day, 0, -1):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return moment


class ActionDispatcher:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._handlers = {
            CreateItemAction: self._create_item,
            UpdateItemAction: self._update_item,
            DeleteItemAction: self._delete_item,
            ListItemsAction: self._list_items,
            SearchItemsAction: self._search_items,
            MoveItemAction: self._move_item,
            CreateLabelAction: self._create_label,
            AddLabelAction: self._add_label,
            RemoveLabelAction: self._remove_label,
            MarkCompleteAction: self._mark_complete,
            RescheduleAction: self._reschedule,
            PrioritizeAction: self._prioritize,
            GetSummaryAction: self._get_summary,
            ClearNotificationsAction: self._clear_notifications,
            NavigateAction: self._navigate,
            RespondAction: self._respond,
            BatchUpdateAction: self._batch_update,
            BulkCreateAction: self._bulk_create,
            StartFocusAction: self._start_focus,
            GetAnalyticsAction: self._get_analytics,
        }

    def execute(self, action: AgentAction, user_id: str) -> ActionResult:
        """Run one action for user_id. Never raises."""
        if not user_id:
            return ActionResult(success=False, message="No user specified")
        try:
            handler = self._handlers[type(action)]
            return handler(action.data, user_id)
        except Exception as e:
            logger.exception("action %s failed for user %s", getattr(action, "type", action), user_id)
            return ActionResult(success=False, message=str(e) or "Action failed")

    # ========== Item mutations ==========

    def _create_item(self, data, user_id: str) -> ActionResult:
        item = database.create_item(user_id, ItemCreate(
            title=data.title,
            type=data.type,
            priority=data.priority,
            status=data.status,
            due_at=normalize_date(data.due_at),
            details=data.details,
            tags=data.tags,
            estimated_minutes=data.estimated_minutes,
        ))
        database.log_activity(user_id, "item_created", item.id, {"type": item.type, "title": item.title})
        return ActionResult(success=True, message=f'Created {item.type}: "{item.title}"', data=item)

    def _update_item(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)

        changes = data.updates.model_dump(exclude_none=True)
        if "due_at" in changes:
            due_at = normalize_date(changes["due_at"])
            if not due_at:
                return ActionResult(success=False, message="Invalid date format")
            changes["due_at"] = due_at
        if not changes:
            return ActionResult(success=False, message="No updates specified")

        item, applied = database.update_item(existing.id, changes, user_id)
        if not item:
            return ActionResult(success=False, message="Failed to update item")
        if applied:
            database.log_activity(user_id, "item_updated", item.id, applied)
        return ActionResult(success=True, message=f'Updated item: "{item.title}"', data=item)

    def _delete_item(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        if not database.delete_item(existing.id, user_id):
            return ActionResult(success=False, message="Failed to delete item")
        database.log_activity(user_id, "item_deleted", existing.id, {"title": existing.title})
        return ActionResult(success=True, message=f'Deleted item: "{existing.title}"')

    def _move_item(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        item, applied = database.update_item(existing.id, {"type": data.to_type}, user_id)
        if not item:
            return ActionResult(success=False, message="Failed to move item")
        if applied:
            database.log_activity(user_id, "item_moved", item.id, {"from": existing.type, **applied})
        return ActionResult(success=True, message=f'Moved "{item.title}" to {data.to_type}', data=item)

    def _mark_complete(self, data, user_id: str) -> ActionResult:
        completed: list[Item] = []
        not_found: list[str] = []
        for identifier in data.item_ids:
            existing = resolve_item(identifier, user_id)
            if not existing:
                not_found.append(identifier)
                continue
            item, applied = database.update_item(existing.id, {"status": "completed"}, user_id)
            if item:
                completed.append(item)
                if applied:
                    database.log_activity(user_id, "item_completed", item.id, applied)

        if not completed and not_found:
            return ActionResult(
                success=False,
                message=f"Items not found: {', '.join(not_found)}",
                data={"completed": [], "not_found": not_found},
            )
        message = f"Marked {len(completed)} item(s) as complete"
        if not_found:
            message += f" ({len(not_found)} not found: {', '.join(not_found)})"
        return ActionResult(success=True, message=message, data={"completed": completed, "not_found": not_found})

    def _reschedule(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        due_at = normalize_date(data.new_due_at)
        if not due_at:
            return ActionResult(success=False, message="Invalid date format")
        item, applied = database.update_item(existing.id, {"due_at": due_at}, user_id)
        if not item:
            return ActionResult(success=False, message="Failed to reschedule item")
        if applied:
            database.log_activity(user_id, "item_rescheduled", item.id, {**applied, "previous_due_at": existing.due_at})
        return ActionResult(success=True, message=f'Rescheduled "{item.title}" to {due_at[:10]}', data=item)

    def _prioritize(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        item, applied = database.update_item(existing.id, {"priority": data.priority}, user_id)
        if not item:
            return ActionResult(success=False, message="Failed to update priority")
        if applied:
            database.log_activity(user_id, "item_prioritized", item.id, applied)
        return ActionResult(success=True, message=f'Set "{item.title}" to {data.priority} priority', data=item)

    # ========== Labels ==========

    def _find_label(self, label_ref: str, user_id: str) -> Optional[Label]:
        label = database.get_label(label_ref, user_id)
        if label:
            return label
        wanted = label_ref.strip().lower()
        return next((l for l in database.list_labels(user_id) if l.name.lower() == wanted), None)

    def _create_label(self, data, user_id: str) -> ActionResult:
        label = database.create_label(user_id, data.name, data.color)
        return ActionResult(success=True, message=f'Created label: "{label.name}"', data=label)

    def _add_label(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        label = self._find_label(data.label_id, user_id)
        if not label:
            return ActionResult(success=False, message=f"Label not found: {data.label_id}")
        database.add_label_to_item(existing.id, label.id)
        database.log_activity(user_id, "label_added", existing.id, {"label_id": label.id, "label": label.name})
        return ActionResult(success=True, message=f'Added label "{label.name}" to "{existing.title}"')

    def _remove_label(self, data, user_id: str) -> ActionResult:
        existing = resolve_item(data.item_id, user_id)
        if not existing:
            return _not_found(data.item_id)
        label = self._find_label(data.label_id, user_id)
        if not label:
            return ActionResult(success=False, message=f"Label not found: {data.label_id}")
        database.remove_label_from_item(existing.id, label.id)
        database.log_activity(user_id, "label_removed", existing.id, {"label_id": label.id, "label": label.name})
        return ActionResult(success=True, message=f'Removed label "{label.name}" from "{existing.title}"')

    # ========== Reads ==========

    def _list_items(self, data, user_id: str) -> ActionResult:
        items = database.list_items(user_id, type=data.type, status=data.status, priority=data.priority)
        items = items[:data.limit]
        return ActionResult(success=True, message=f"Found {len(items)} items", data=items)

    def _search_items(self, data, user_id: str) -> ActionResult:
        query = data.query.strip().lower()
        results = [
            i for i in database.list_items(user_id)
            if query in i.title.lower()
            or query in (i.details or "").lower()
            or any(query in tag.lower() for tag in i.tags)
        ]
        return ActionResult(
            success=True,
            message=f'Found {len(results)} items matching "{data.query}"',
            data=results[:data.limit],
        )

    def _get_summary(self, data, user_id: str) -> ActionResult:
        now = self.clock()
        if data.period == "week":
            start = now - timedelta(days=7)
        elif data.period == "month":
            start = _months_back(now, 1)
        else:
            start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)

        items = database.list_items(user_id)
        in_window = []
        for item in items:
            moment = parse_datetime(item.due_at or item.created_at)
            if moment and start <= moment <= now:
                in_window.append(item)

        stats = {
            "total": len(in_window),
            "completed": sum(1 for i in in_window if i.status == "completed"),
            "in_progress": sum(1 for i in in_window if i.status == "in_progress"),
            "not_started": sum(1 for i in in_window if i.status == "not_started"),
            "overdue": sum(1 for i in in_window if is_overdue(i, now)),
        }
        # Upcoming deadlines are not bound to the window
        upcoming = upcoming_items(items, now)
        return ActionResult(
            success=True,
            message=f"Summary for {data.period}",
            data={"period": data.period, "stats": stats, "upcoming_due": upcoming},
        )

    def _get_analytics(self, data, user_id: str) -> ActionResult:
        now = self.clock()
        start = now - timedelta(days=data.days)
        items = database.list_items(user_id)

        def within(value: Optional[str]) -> bool:
            moment = parse_datetime(value)
            return moment is not None and start <= moment <= now

        created = [i for i in items if within(i.created_at)]
        completed = [i for i in items if i.status == "completed" and within(i.updated_at)]
        overdue = sorted((i for i in items if is_overdue(i, now)), key=lambda i: parse_datetime(i.due_at))
        open_items = [i for i in items if i.status != "completed"]

        analytics = {
            "days": data.days,
            "overview": {
                "created": len(created),
                "completed": len(completed),
                "completion_rate": round(len(completed) / len(created) * 100) if created else 0,
                "overdue": len(overdue),
            },
            "by_type": {t: sum(1 for i in created if i.type == t) for t in ITEM_TYPES},
            # Current distribution of open work, not bound to the window
            "by_priority": {p: sum(1 for i in open_items if i.priority == p) for p in PRIORITY_LEVELS},
            "overdue_items": [
                {
                    "id": i.id,
                    "title": i.title,
                    "due_at": i.due_at,
                    "days_overdue": (now - parse_datetime(i.due_at)).days,
                }
                for i in overdue[:5]
            ],
        }
        return ActionResult(success=True, message=f"Analytics for the last {data.days} days", data=analytics)

    # ========== Batch ==========

    def _batch_update(self, data, user_id: str) -> ActionResult:
        now = self.clock()
        criteria = data.filter
        items = database.list_items(user_id, type=criteria.type, status=criteria.status, priority=criteria.priority)
        if criteria.overdue is not None:
            items = [i for i in items if is_overdue(i, now) == criteria.overdue]

        changes = data.updates.model_dump(exclude_none=True)
        if "due_at" in changes:
            due_at = normalize_date(changes["due_at"])
            if not due_at:
                return ActionResult(success=False, message="Invalid date format")
            changes["due_at"] = due_at
        if not changes:
            return ActionResult(success=False, message="No updates specified")

        updated: list[dict] = []
        for item in items:
            result, applied = database.update_item(item.id, changes, user_id)
            if result:
                if applied:
                    database.log_activity(user_id, "item_updated", item.id, applied)
                updated.append({"id": item.id, "title": item.title})
        return ActionResult(
            success=True,
            message=f"Updated {len(updated)} item(s)",
            data={"updated": updated, "count": len(updated)},
        )

    def _bulk_create(self, data, user_id: str) -> ActionResult:
        created: list[dict] = []
        for entry in data.items:
            # Dates pass through untouched here, unlike create_item
            item = database.create_item(user_id, ItemCreate(
                title=entry.title,
                type=entry.type,
                priority=entry.priority,
                due_at=entry.due_at,
                details=entry.details,
                estimated_minutes=entry.estimated_minutes,
            ))
            database.log_activity(user_id, "item_created", item.id, {"type": item.type, "title": item.title})
            created.append({"id": item.id, "title": item.title})
        return ActionResult(
            success=True,
            message=f"Created {len(created)} item(s)",
            data={"created": created, "count": len(created)},
        )

    # ========== Pass-through ==========

    def _clear_notifications(self, data, user_id: str) -> ActionResult:
        if data.all:
            count = database.mark_all_notifications_delivered(user_id)
            return ActionResult(success=True, message="All notifications cleared", data={"cleared": count})
        if data.notification_id:
            if not database.mark_notification_delivered(data.notification_id, user_id):
                return ActionResult(success=False, message=f"Notification not found: {data.notification_id}")
            return ActionResult(success=True, message="Notification cleared")
        return ActionResult(success=False, message="No notification specified")

    def _navigate(self, data, user_id: str) -> ActionResult:
        return ActionResult(success=True, message=f"Navigating to {data.to}", navigate=data.to)

    def _respond(self, data, user_id: str) -> ActionResult:
        return ActionResult(success=True, message=data.message)

    def _start_focus(self, data, user_id: str) -> ActionResult:
        item = resolve_item(data.item_id, user_id) if data.item_id else None
        now = self.clock()
        session = {
            "duration": data.duration,
            "block_notifications": data.block_notifications,
            "item_id": item.id if item else None,
            "item_title": item.title if item else None,
            "started_at": to_iso(now),
            "ends_at": to_iso(now + timedelta(minutes=data.duration)),
        }
        message = f"Starting {data.duration} minute focus session"
        if item:
            message += f' on "{item.title}"'
        return ActionResult(success=True, message=message, data=session, navigate=FOCUS_PATH)


def _check_handlers_cover_actions() -> None:
    variants = set(get_args(get_args(AgentAction)[0]))
    handled = set(ActionDispatcher()._handlers)
    missing = variants - handled
    if missing:
        raise RuntimeError(f"No dispatcher handler for: {sorted(v.__name__ for v in missing)}")


_check_handlers_cover_actions()
