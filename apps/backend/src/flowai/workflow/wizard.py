"""Describe -> Review -> Deploy wizard over a single workflow.

The step is never stored: it is derived from the workflow by
``current_step``. Transitions are pure functions returning a new
``Workflow``; ``WizardStateMachine`` sequences them around the calls to the
completion service and rejects overlapping requests.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Union

from ..errors import EmptyInput, IllegalTransition, SessionBusy
from .elicitation import NeedsClarification, PlanElicitationSession
from .schema import WizardStep, Workflow, WorkflowPlan, WorkflowStatus
from .synthesis import synthesize_script

if TYPE_CHECKING:
    from ..llm.client import CompletionClient

logger = logging.getLogger(__name__)


def current_step(workflow: Workflow) -> WizardStep:
    if workflow.script is not None:
        return WizardStep.DEPLOY
    if workflow.plan is not None:
        return WizardStep.REVIEW
    return WizardStep.DESCRIBE


def apply_plan(workflow: Workflow, plan: WorkflowPlan, prompt: str) -> Workflow:
    return workflow.model_copy(
        update={
            "name": plan.name,
            "description": plan.description,
            "prompt": prompt,
            "plan": plan,
            "script": None,
            "status": WorkflowStatus.DRAFT,
        }
    )


def apply_script(workflow: Workflow, script: str) -> Workflow:
    return workflow.model_copy(update={"script": script, "status": WorkflowStatus.GENERATED})


def apply_refinement(workflow: Workflow) -> Workflow:
    # The stale plan stays with the elicitation session as context only.
    return workflow.model_copy(update={"plan": None, "script": None, "status": WorkflowStatus.DRAFT})


class WizardStateMachine:
    """Drives one workflow through elicitation, review and synthesis.

    Args:
        workflow: The workflow being edited. Never mutated; each successful
            transition replaces it with an updated copy.
        client: Completion service used for synthesis and transcription.
        session: Elicitation session; a fresh one is created when omitted.
        on_update: Called with every new workflow value (e.g. ``store.save``).
    """

    def __init__(
        self,
        workflow: Workflow,
        client: CompletionClient,
        session: Optional[PlanElicitationSession] = None,
        on_update: Optional[Callable[[Workflow], Any]] = None,
    ):
        self.client = client
        self.session = session or PlanElicitationSession(client)
        self.on_update = on_update
        self.input_text = ""
        self._workflow = workflow
        self._busy = False
        self._closed = False

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    @property
    def step(self) -> WizardStep:
        return current_step(self._workflow)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def closed(self) -> bool:
        return self._closed

    def _commit(self, workflow: Workflow) -> Workflow:
        if self.on_update is not None:
            self.on_update(workflow)
        self._workflow = workflow
        return workflow

    def _require(self, *steps: WizardStep, event: str) -> None:
        if self._closed:
            raise IllegalTransition(f"Cannot {event}: the wizard has been closed")
        if steps and self.step not in steps:
            allowed = ", ".join(s.name.capitalize() for s in steps)
            raise IllegalTransition(
                f"Cannot {event} in step {self.step.name.capitalize()} (allowed: {allowed})"
            )

    @contextmanager
    def _in_flight(self, event: str) -> Iterator[None]:
        if self._busy:
            raise SessionBusy(f"Cannot {event}: another request is still in progress")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def set_input(self, text: str) -> None:
        self._require(event="edit the input")
        self.input_text = text

    async def submit_utterance(
        self, utterance: Optional[str] = None
    ) -> Union[Workflow, NeedsClarification]:
        """Describe step: elicit a plan from ``utterance`` (or the input buffer).

        Returns the clarification question, or the updated workflow once a
        plan has been accepted.
        """
        self._require(WizardStep.DESCRIBE, event="submit a description")
        text = (self.input_text if utterance is None else utterance).strip()
        if not text:
            raise EmptyInput("Describe the automation before generating a plan")

        with self._in_flight("submit a description"):
            result = await self.session.elicit(text, list(self.session.turns))

        if isinstance(result, NeedsClarification):
            self.session.record_clarification(text, result.question)
            self.input_text = ""
            return result

        prompt = self.session.flatten_prompt(text)
        workflow = self._commit(apply_plan(self._workflow, result.plan, prompt))
        self.session.reset()
        self.input_text = ""
        logger.info("Workflow %s moved to Review with plan '%s'", workflow.id, result.plan.name)
        return workflow

    async def request_synthesis(self) -> Workflow:
        """Review/Deploy step: generate (or regenerate) the script for the accepted plan."""
        self._require(WizardStep.REVIEW, WizardStep.DEPLOY, event="generate code")
        plan = self._workflow.plan
        if plan is None:
            raise IllegalTransition("Cannot generate code without an accepted plan")

        with self._in_flight("generate code"):
            script = await synthesize_script(self.client, plan, self._workflow.prompt)

        workflow = self._commit(apply_script(self._workflow, script))
        logger.info("Workflow %s moved to Deploy", workflow.id)
        return workflow

    def refine(self) -> Workflow:
        """Review step: go back to Describe, keeping prompt and plan as elicitation context."""
        self._require(WizardStep.REVIEW, event="refine the plan")
        if self._busy:
            raise SessionBusy("Cannot refine the plan: another request is still in progress")

        previous = self._workflow
        workflow = self._commit(apply_refinement(previous))
        self.session.seed_for_refinement(previous.prompt, previous.plan)
        self.input_text = ""
        return workflow

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Append a transcription of ``audio`` to the input buffer and return the buffer."""
        self._require(event="transcribe audio")
        with self._in_flight("transcribe audio"):
            text = await self.client.request_transcription(audio, mime_type)

        if text:
            self.input_text = f"{self.input_text} {text}" if self.input_text else text
        return self.input_text

    def close(self) -> Workflow:
        """Hand the workflow back; the wizard accepts no further events."""
        if self._busy:
            raise SessionBusy("Cannot close: a request is still in progress")
        self._closed = True
        self.session.reset()
        self.input_text = ""
        return self._workflow

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of the wizard for the UI."""
        return {
            "step": self.step.name.capitalize(),
            "conversation": [turn.model_dump(by_alias=True) for turn in self.session.turns],
            "pending_question": self.session.pending_question,
            "input_text": self.input_text,
            "busy": self._busy,
            "closed": self._closed,
        }
