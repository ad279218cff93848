"""Pydantic models for workflows, plans and the elicitation conversation."""

import time
import uuid
from enum import Enum, IntEnum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    """Frozen record serialized with camelCase keys; snake_case accepted on input."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ConversationTurn(_Record):
    """One message of the elicitation conversation."""

    role: Literal["user", "assistant"]
    text: str


class WorkflowStep(_Record):
    """A single step of a plan."""

    id: str
    action: str  # technical description of what the step does
    service: str  # "Gmail" | "Sheets" | "Drive" | ...


class WorkflowPlan(_Record):
    """A named, ordered sequence of steps. Replaced wholesale, never edited."""

    name: str = Field(min_length=1)
    description: str
    steps: tuple[WorkflowStep, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowPlan":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        return self


class WorkflowStatus(str, Enum):
    DRAFT = "Draft"
    GENERATED = "Generated"
    DEPLOYED = "Deployed"


class Workflow(_Record):
    """The persisted workflow envelope.

    ``status`` is Generated exactly when ``script`` is present. The wizard
    step is derived from ``plan``/``script`` and never stored here.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    prompt: str = ""  # flattened user utterances that produced the plan
    plan: Optional[WorkflowPlan] = None
    script: Optional[str] = None
    status: WorkflowStatus = WorkflowStatus.DRAFT
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))


class WizardStep(IntEnum):
    DESCRIBE = 0
    REVIEW = 1
    DEPLOY = 2


class PlanGenerationResult(_Record):
    """Decoded shape of the elicitation response."""

    is_valid: bool
    question: Optional[str] = None
    plan: Optional[WorkflowPlan] = None
