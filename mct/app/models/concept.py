from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Category(str, Enum):
    WORK = "Work"
    PERSONAL = "Personal"
    LEARNING = "Learning"
    HEALTH = "Health"
    FINANCE = "Finance"
    CREATIVE = "Creative"
    TECHNOLOGY = "Technology"
    BUSINESS = "Business"
    OTHER = "Other"

    @classmethod
    def _missing_(cls, value: Any):
        # Form selects submit lowercase values ("work"); accept any casing.
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Status(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _coerce_category(value: Any) -> Any:
    if isinstance(value, str):
        return Category(value)
    return value


class ConceptBase(BaseModel):
    title: str
    description: Optional[str] = None
    category: Category
    priority: Priority
    due_date: Optional[date] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        return _coerce_category(value)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Title is required")
        return cleaned

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class ConceptCreate(ConceptBase):
    """Payload for a new concept. Status is not accepted; new concepts are always pending."""

    model_config = ConfigDict(extra="ignore")

    @field_validator("due_date")
    @classmethod
    def _due_date_not_past(cls, value: Optional[date]) -> Optional[date]:
        if value is not None and value < utc_today():
            raise ValueError("Due date cannot be in the past")
        return value


class ConceptUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    due_date: Optional[date] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        return _coerce_category(value)

    @field_validator("title", "category", "priority", "status")
    @classmethod
    def _not_null(cls, value: Any, info: ValidationInfo) -> Any:
        # Omit a field to leave it alone; only description and due_date can be cleared.
        if value is None:
            raise ValueError(f"{info.field_name.capitalize()} cannot be null")
        return value

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Title is required")
        return cleaned

    def changes(self) -> dict:
        """Only the fields the caller actually sent, JSON-ready."""
        return self.model_dump(mode="json", exclude_unset=True)


class Concept(ConceptBase):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("id", "_key"))
    owner: str
    status: Status = Status.PENDING
    created_at: datetime
    updated_at: datetime

    def summary(self) -> "ConceptSummary":
        return ConceptSummary(
            title=self.title,
            status=self.status.value,
            priority=self.priority.value,
            category=self.category.value,
        )


class ConceptSummary(BaseModel):
    """What the assistant sees of a concept. Lenient on purpose: it comes from the browser."""

    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None

    def describe(self) -> str:
        return (
            f"- {self.title or 'Untitled'} ({self.status or 'pending'}, "
            f"{self.priority or 'medium'} priority, category: {self.category or 'General'})"
        )


ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


class ChangeNotification(BaseModel):
    event: ChangeType
    record_id: str
    record: Optional[Concept] = None
