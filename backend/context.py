from datetime import datetime, time, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from database import count_pending_notifications, list_items, list_labels
from models import Item
from timeutil import parse_datetime, to_iso, utcnow

UPCOMING_LIMIT = 5
RECENT_LIMIT = 5
OVERDUE_LIMIT = 5
DEFAULT_ESTIMATE_MINUTES = 30


class ItemCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    tasks: int
    meetings: int
    school: int
    not_started: int
    in_progress: int
    completed: int
    blocked: int
    overdue: int
    due_today: int


class UpcomingItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    type: str
    due_at: str
    priority: str


class RecentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    type: str
    status: str


class NextMeeting(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    starts_at: str
    minutes_until: int


class OverdueItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    type: str
    priority: str
    due_at: str
    days_overdue: int


class LabelSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str


class AgentContext(BaseModel):
    """Point-in-time snapshot of a user's workload, fed verbatim into the prompt."""
    model_config = ConfigDict(frozen=True)

    current_date: str
    current_time: str
    item_counts: ItemCounts
    upcoming_items: list[UpcomingItem]
    recent_items: list[RecentItem]
    labels: list[LabelSummary]
    unread_notifications: int
    estimated_hours_remaining: float
    today_meetings: int = 0
    next_meeting: Optional[NextMeeting] = None
    overdue_items: list[OverdueItem] = []


def is_overdue(item: Item, now: datetime) -> bool:
    if not item.due_at or item.status == "completed":
        return False
    due = parse_datetime(item.due_at)
    return due is not None and due < now


def upcoming_items(items: list[Item], now: datetime, limit: int = UPCOMING_LIMIT) -> list[Item]:
    """Incomplete items due after now, soonest first."""
    pending = []
    for item in items:
        if item.status == "completed":
            continue
        due = parse_datetime(item.due_at)
        if due and due > now:
            pending.append((due, item))
    pending.sort(key=lambda pair: pair[0])
    return [item for _, item in pending[:limit]]


def overdue_items(items: list[Item], now: datetime, limit: int = OVERDUE_LIMIT) -> list[OverdueItem]:
    """Incomplete items past due, most overdue first."""
    late = []
    for item in items:
        if is_overdue(item, now):
            days = (now - parse_datetime(item.due_at)).days
            late.append(OverdueItem(
                id=item.id, title=item.title, type=item.type,
                priority=item.priority, due_at=item.due_at, days_overdue=days,
            ))
    late.sort(key=lambda o: o.days_overdue, reverse=True)
    return late[:limit]


def assemble_context(user_id: str, now: Optional[datetime] = None) -> AgentContext:
    """Read the user's items, labels and notifications into one snapshot. No writes."""
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    items = list_items(user_id)
    labels = list_labels(user_id)

    day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    day_end = day_start + timedelta(days=1)

    def due_today(item: Item) -> bool:
        due = parse_datetime(item.due_at)
        return item.status != "completed" and due is not None and day_start <= due < day_end

    # Meetings place on the calendar by start time, falling back to due time
    todays_meetings = []
    for item in items:
        if item.type != "meeting":
            continue
        starts = parse_datetime(item.start_at or item.due_at)
        if starts is not None and day_start <= starts < day_end:
            todays_meetings.append((starts, item))
    todays_meetings.sort(key=lambda pair: pair[0])
    next_meeting = None
    for starts, item in todays_meetings:
        if starts > now:
            next_meeting = NextMeeting(
                title=item.title,
                starts_at=to_iso(starts),
                minutes_until=round((starts - now).total_seconds() / 60),
            )
            break

    open_items = [i for i in items if i.status != "completed"]
    estimated_minutes = sum(i.estimated_minutes or DEFAULT_ESTIMATE_MINUTES for i in open_items)

    # list_items is already newest-first
    recent = items[:RECENT_LIMIT]

    return AgentContext(
        current_date=now.date().isoformat(),
        current_time=now.strftime("%H:%M:%S"),
        item_counts=ItemCounts(
            total=len(items),
            tasks=sum(1 for i in items if i.type == "task"),
            meetings=sum(1 for i in items if i.type == "meeting"),
            school=sum(1 for i in items if i.type == "school"),
            not_started=sum(1 for i in items if i.status == "not_started"),
            in_progress=sum(1 for i in items if i.status == "in_progress"),
            completed=sum(1 for i in items if i.status == "completed"),
            blocked=sum(1 for i in items if i.status == "blocked"),
            overdue=sum(1 for i in items if is_overdue(i, now)),
            due_today=sum(1 for i in items if due_today(i)),
        ),
        upcoming_items=[
            UpcomingItem(id=i.id, title=i.title, type=i.type, due_at=i.due_at, priority=i.priority)
            for i in upcoming_items(items, now)
        ],
        recent_items=[
            RecentItem(id=i.id, title=i.title, type=i.type, status=i.status)
            for i in recent
        ],
        labels=[LabelSummary(id=l.id, name=l.name, color=l.color) for l in labels],
        unread_notifications=count_pending_notifications(user_id),
        estimated_hours_remaining=round(estimated_minutes / 60, 1),
        today_meetings=len(todays_meetings),
        next_meeting=next_meeting,
        overdue_items=overdue_items(items, now),
    )
