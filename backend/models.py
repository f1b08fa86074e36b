from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, Any, Literal, Optional, Union

ItemType = Literal["task", "meeting", "school"]
ItemStatus = Literal["not_started", "in_progress", "completed", "blocked"]
ItemPriority = Literal["low", "medium", "high", "urgent"]


class Item(BaseModel):
    id: str
    user_id: str
    type: ItemType
    title: str = Field(min_length=1)
    details: Optional[str] = None
    status: ItemStatus = "not_started"
    priority: ItemPriority = "medium"
    tags: list[str] = []
    due_at: Optional[str] = None  # ISO-8601, UTC
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0)
    created_at: str
    updated_at: str


class ItemCreate(BaseModel):
    title: str = Field(min_length=1)
    type: ItemType = "task"
    details: Optional[str] = None
    status: ItemStatus = "not_started"
    priority: ItemPriority = "medium"
    tags: list[str] = []
    due_at: Optional[str] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0)


class ItemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    type: Optional[ItemType] = None
    details: Optional[str] = None
    status: Optional[ItemStatus] = None
    priority: Optional[ItemPriority] = None
    tags: Optional[list[str]] = None
    due_at: Optional[str] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0)


class Label(BaseModel):
    id: str
    user_id: str
    name: str
    color: str
    created_at: str


class Notification(BaseModel):
    id: str
    user_id: str
    item_id: Optional[str] = None
    title: str
    due_at: str
    delivered_at: Optional[str] = None  # None means still pending


class ActivityRecord(BaseModel):
    id: str
    user_id: str
    action: str
    item_id: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    created_at: str


# ========== Agent actions ==========
# Payload field names follow the JSON grammar the model is prompted with.

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateItemData(_Payload):
    title: str = Field(min_length=1)
    type: ItemType = "task"
    priority: ItemPriority = "medium"
    status: ItemStatus = "not_started"
    due_at: Optional[str] = Field(default=None, alias="dueAt")
    details: Optional[str] = None
    tags: list[str] = []
    estimated_minutes: Optional[int] = Field(default=None, gt=0, alias="estimatedMinutes")


class ItemChanges(_Payload):
    title: Optional[str] = Field(default=None, min_length=1)
    type: Optional[ItemType] = None
    priority: Optional[ItemPriority] = None
    status: Optional[ItemStatus] = None
    due_at: Optional[str] = Field(default=None, alias="dueAt")
    details: Optional[str] = None
    tags: Optional[list[str]] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0, alias="estimatedMinutes")


class UpdateItemData(_Payload):
    item_id: str = Field(alias="itemId")
    updates: ItemChanges


class DeleteItemData(_Payload):
    item_id: str = Field(alias="itemId")


class ListItemsData(_Payload):
    type: Optional[ItemType] = None
    status: Optional[ItemStatus] = None
    priority: Optional[ItemPriority] = None
    limit: int = Field(default=10, gt=0)


class SearchItemsData(_Payload):
    query: str
    limit: int = Field(default=10, gt=0)


class MoveItemData(_Payload):
    item_id: str = Field(alias="itemId")
    to_type: ItemType = Field(alias="toType")


class CreateLabelData(_Payload):
    name: str = Field(min_length=1)
    color: str = "#6b7280"


class LabelItemData(_Payload):
    item_id: str = Field(alias="itemId")
    label_id: str = Field(alias="labelId")


class MarkCompleteData(_Payload):
    item_ids: list[str] = Field(alias="itemIds")

    @field_validator("item_ids", mode="before")
    @classmethod
    def _wrap_single(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class RescheduleData(_Payload):
    item_id: str = Field(alias="itemId")
    new_due_at: str = Field(alias="newDueAt")


class PrioritizeData(_Payload):
    item_id: str = Field(alias="itemId")
    priority: ItemPriority


class GetSummaryData(_Payload):
    period: Literal["today", "week", "month"] = "today"


class ClearNotificationsData(_Payload):
    all: bool = False
    notification_id: Optional[str] = Field(default=None, alias="notificationId")


class NavigateData(_Payload):
    to: str


class RespondData(_Payload):
    message: str


class BatchFilter(_Payload):
    type: Optional[ItemType] = None
    status: Optional[ItemStatus] = None
    priority: Optional[ItemPriority] = None
    overdue: Optional[bool] = None


class BatchChanges(_Payload):
    status: Optional[ItemStatus] = None
    priority: Optional[ItemPriority] = None
    due_at: Optional[str] = Field(default=None, alias="dueAt")


class BatchUpdateData(_Payload):
    filter: BatchFilter = BatchFilter()
    updates: BatchChanges


class BulkItemSpec(_Payload):
    title: str = Field(min_length=1)
    type: ItemType = "task"
    priority: ItemPriority = "medium"
    due_at: Optional[str] = Field(default=None, alias="dueAt")
    details: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0, alias="estimatedMinutes")


class BulkCreateData(_Payload):
    items: list[BulkItemSpec]


class StartFocusData(_Payload):
    item_id: Optional[str] = Field(default=None, alias="itemId")
    duration: int = Field(default=25, gt=0)
    block_notifications: bool = Field(default=True, alias="blockNotifications")


class GetAnalyticsData(_Payload):
    days: int = Field(default=7, gt=0)


class CreateItemAction(BaseModel):
    type: Literal["create_item"] = "create_item"
    data: CreateItemData


class UpdateItemAction(BaseModel):
    type: Literal["update_item"] = "update_item"
    data: UpdateItemData


class DeleteItemAction(BaseModel):
    type: Literal["delete_item"] = "delete_item"
    data: DeleteItemData


class ListItemsAction(BaseModel):
    type: Literal["list_items"] = "list_items"
    data: ListItemsData = ListItemsData()


class SearchItemsAction(BaseModel):
    type: Literal["search_items"] = "search_items"
    data: SearchItemsData


class MoveItemAction(BaseModel):
    type: Literal["move_item"] = "move_item"
    data: MoveItemData


class CreateLabelAction(BaseModel):
    type: Literal["create_label"] = "create_label"
    data: CreateLabelData


class AddLabelAction(BaseModel):
    type: Literal["add_label"] = "add_label"
    data: LabelItemData


class RemoveLabelAction(BaseModel):
    type: Literal["remove_label"] = "remove_label"
    data: LabelItemData


class MarkCompleteAction(BaseModel):
    type: Literal["mark_complete"] = "mark_complete"
    data: MarkCompleteData


class RescheduleAction(BaseModel):
    type: Literal["reschedule"] = "reschedule"
    data: RescheduleData


class PrioritizeAction(BaseModel):
    type: Literal["prioritize"] = "prioritize"
    data: PrioritizeData


class GetSummaryAction(BaseModel):
    type: Literal["get_summary"] = "get_summary"
    data: GetSummaryData = GetSummaryData()


class ClearNotificationsAction(BaseModel):
    type: Literal["clear_notifications"] = "clear_notifications"
    data: ClearNotificationsData = ClearNotificationsData()


class NavigateAction(BaseModel):
    type: Literal["navigate"] = "navigate"
    data: NavigateData


class RespondAction(BaseModel):
    type: Literal["respond"] = "respond"
    data: RespondData


class BatchUpdateAction(BaseModel):
    type: Literal["batch_update"] = "batch_update"
    data: BatchUpdateData


class BulkCreateAction(BaseModel):
    type: Literal["bulk_create"] = "bulk_create"
    data: BulkCreateData


class StartFocusAction(BaseModel):
    type: Literal["start_focus"] = "start_focus"
    data: StartFocusData = StartFocusData()


class GetAnalyticsAction(BaseModel):
    type: Literal["get_analytics"] = "get_analytics"
    data: GetAnalyticsData = GetAnalyticsData()


AgentAction = Annotated[
    Union[
        CreateItemAction,
        UpdateItemAction,
        DeleteItemAction,
        ListItemsAction,
        SearchItemsAction,
        MoveItemAction,
        CreateLabelAction,
        AddLabelAction,
        RemoveLabelAction,
        MarkCompleteAction,
        RescheduleAction,
        PrioritizeAction,
        GetSummaryAction,
        ClearNotificationsAction,
        NavigateAction,
        RespondAction,
        BatchUpdateAction,
        BulkCreateAction,
        StartFocusAction,
        GetAnalyticsAction,
    ],
    Field(discriminator="type"),
]


class ActionResult(BaseModel):
    success: bool
    message: str
    data: Any = None
    navigate: Optional[str] = None


# ========== Chat ==========

class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: list[Message] = []
    conversation_id: Optional[int] = None


class ActionOutcome(BaseModel):
    type: str
    success: bool
    message: str
    data: Any = None


class TurnResult(BaseModel):
    response: str
    actions: list[ActionOutcome] = []
    navigate: Optional[str] = None
