from .elicitation import Accepted, NeedsClarification, PlanElicitationSession
from .schema import (
    ConversationTurn,
    WizardStep,
    Workflow,
    WorkflowPlan,
    WorkflowStatus,
    WorkflowStep,
)
from .store import WorkflowStore
from .wizard import WizardStateMachine, current_step

__all__ = [
    "Accepted",
    "ConversationTurn",
    "NeedsClarification",
    "PlanElicitationSession",
    "WizardStateMachine",
    "WizardStep",
    "Workflow",
    "WorkflowPlan",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowStore",
    "current_step",
]
