import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from mct.app.models.concept import Category, Concept, ConceptCreate, Priority, utc_today
from mct.dashboard.events import ConceptCreated, EventChannel
from mct.dashboard.gateway import GatewayClient, GatewayError

logger = logging.getLogger(__name__)

CATEGORIES = [category.value for category in Category]
PRIORITIES = [(priority.value, priority.value.capitalize()) for priority in Priority]

SUBMIT_FAILED = "Failed to create concept. Please try again."
PAST_DUE_DATE = "Due date cannot be in the past"


@dataclass
class ConceptFormFields:
    title: str = ""
    description: str = ""
    category: str = ""
    priority: str = ""
    due_date: Optional[datetime.date] = None


class ConceptForm:
    """
    Creation form state. Errors are keyed by field name, plus `submit` for
    a failed submission.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        channel: EventChannel,
        today: Callable[[], datetime.date] = utc_today,
    ):
        self.gateway = gateway
        self.channel = channel
        self.today = today
        self.fields = ConceptFormFields()
        self.errors: Dict[str, str] = {}
        self.is_open = False
        self.is_submitting = False

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def reset(self) -> None:
        self.fields = ConceptFormFields()
        self.errors = {}

    def set_field(self, name: str, value: str) -> None:
        if name not in ("title", "description", "category", "priority"):
            raise KeyError(f"Unknown form field '{name}'")
        setattr(self.fields, name, value)
        self.errors.pop(name, None)

    def select_due_date(self, value: Optional[datetime.date]) -> bool:
        """Past dates are refused at selection time, like a disabled calendar day."""
        if value is not None and value < self.today():
            self.errors["due_date"] = PAST_DUE_DATE
            return False
        self.fields.due_date = value
        self.errors.pop("due_date", None)
        return True

    def validate(self) -> bool:
        errors = {}
        if not self.fields.title.strip():
            errors["title"] = "Title is required"
        if not self.fields.category:
            errors["category"] = "Category is required"
        if not self.fields.priority:
            errors["priority"] = "Priority is required"
        self.errors = errors
        return not errors

    async def submit(self) -> Optional[Concept]:
        if self.is_submitting or not self.validate():
            return None

        self.is_submitting = True
        try:
            payload = ConceptCreate(
                title=self.fields.title,
                description=self.fields.description,
                category=self.fields.category,
                priority=self.fields.priority,
                due_date=self.fields.due_date,
            )
            concept = await self.gateway.create_concept(payload)
        except ValidationError as exc:
            for err in exc.errors():
                field = str(err["loc"][0]) if err.get("loc") else "submit"
                self.errors[field] = err["msg"].removeprefix("Value error, ")
            return None
        except GatewayError as exc:
            logger.error("Error creating concept: %s", exc)
            self.errors = {"submit": SUBMIT_FAILED}
            return None
        finally:
            self.is_submitting = False

        self.reset()
        self.close()
        self.channel.publish(ConceptCreated(concept))
        return concept
