"""Plan elicitation: turn a free-text automation request into an accepted plan.

Each user utterance is sent, together with the structured conversation so
far, to the completion service. The service either asks exactly one
clarifying question or returns a complete plan. This module keeps the
conversation and the pending question; deciding *whether* a request is
specific enough is left to the model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import ValidationError

from ..errors import EmptyInput, MalformedResponse
from .schema import ConversationTurn, PlanGenerationResult, WorkflowPlan

if TYPE_CHECKING:
    from ..llm.client import CompletionClient

logger = logging.getLogger(__name__)

PLAN_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "isValid": {
            "type": "boolean",
            "description": (
                "True only when the request names a concrete trigger, concrete services "
                "and an explicit data flow. False when anything critical is ambiguous."
            ),
        },
        "question": {
            "type": "string",
            "description": (
                "When isValid is false: one specific question about the most important "
                "missing detail (e.g. 'Which email provider?', 'What should trigger this?')."
            ),
        },
        "plan": {
            "type": "object",
            "description": "The workflow plan. Only present when isValid is true.",
            "properties": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "steps": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "action": {
                                "type": "string",
                                "description": "Verbose, technical explanation of exactly what this step does.",
                            },
                            "service": {
                                "type": "string",
                                "description": "Google Workspace service involved (e.g. Gmail, Sheets, Drive).",
                            },
                        },
                        "required": ["id", "action", "service"],
                    },
                },
            },
            "required": ["name", "description", "steps"],
        },
    },
    "required": ["isValid"],
}

ELICITATION_PROMPT = """\
Role: You are an expert Google Apps Script solution architect.

Task: Decide whether the automation request below is specific enough to build.
{context}
<current_request>
{utterance}
</current_request>

## Validation rubric
1. Trigger: is it clear WHEN this runs ("Daily at 9am", "On form submit",
   "When an email arrives")? "Automatically" is too vague.
2. Services: are concrete services named ("Gmail" rather than "email",
   "Sheets" rather than "a spreadsheet")?
3. Data flow: is it explicit what data moves from one step to the next?

## Decision
- If a CRITICAL detail is missing, set isValid to false and ask ONE polite,
  direct question in "question".
- If the request is sufficient (even if simple), set isValid to true and
  return the full "plan".

## Plan rules
- Step ids are unique strings ("1", "2", ...) in execution order.
- "action" must be technical (e.g. "Query the Gmail API for threads labelled 'Invoices'").
"""


@dataclass(frozen=True)
class NeedsClarification:
    question: str


@dataclass(frozen=True)
class Accepted:
    plan: WorkflowPlan


ElicitationResult = Union[NeedsClarification, Accepted]


def render_transcript(turns: list[ConversationTurn]) -> str:
    """Serialize structured turns for the prompt. Only called at request time."""
    labels = {"user": "User", "assistant": "Assistant"}
    return "\n".join(f"{labels[turn.role]}: {turn.text}" for turn in turns)


def build_elicitation_prompt(
    utterance: str,
    prior_turns: list[ConversationTurn],
    previous_plan: Optional[WorkflowPlan] = None,
) -> str:
    context = ""
    if previous_plan is not None:
        context += (
            "\nThe user is refining this previously accepted plan:\n"
            f"<previous_plan>\n{previous_plan.model_dump_json(indent=2)}\n</previous_plan>\n"
        )
    if prior_turns:
        context += (
            "\nPrevious conversation:\n"
            f"<conversation>\n{render_transcript(prior_turns)}\n</conversation>\n"
        )
    return ELICITATION_PROMPT.format(context=context, utterance=utterance)


def decode_elicitation_response(raw: dict[str, Any]) -> ElicitationResult:
    """Map the raw structured completion onto a result, or raise MalformedResponse."""
    try:
        result = PlanGenerationResult.model_validate(raw)
    except ValidationError as e:
        raise MalformedResponse(f"Plan response did not match the expected schema: {e}") from e

    if result.is_valid:
        if result.plan is None:
            raise MalformedResponse("Plan response marked valid but contained no plan")
        return Accepted(plan=result.plan)

    question = (result.question or "").strip()
    if not question:
        raise MalformedResponse("Plan response marked invalid but asked no question")
    return NeedsClarification(question=question)


class PlanElicitationSession:
    """Conversation state for one wizard's elicitation.

    ``turns`` is append-only until ``reset()``; ``pending_question`` is the
    latest unanswered clarification. ``elicit()`` itself never mutates state,
    so a failed attempt leaves the session exactly as it was.
    """

    def __init__(self, client: CompletionClient):
        self.client = client
        self.turns: list[ConversationTurn] = []
        self.pending_question: Optional[str] = None
        self.previous_plan: Optional[WorkflowPlan] = None

    async def elicit(
        self,
        utterance: str,
        prior_turns: list[ConversationTurn],
    ) -> ElicitationResult:
        """Send one elicitation request and decode the answer."""
        text = utterance.strip()
        if not text:
            raise EmptyInput("Describe the automation before generating a plan")

        prompt = build_elicitation_prompt(text, prior_turns, self.previous_plan)
        raw = await self.client.request_structured_completion(
            prompt,
            PLAN_RESPONSE_SCHEMA,
            schema_name="plan_generation",
        )

        try:
            result = decode_elicitation_response(raw)
        except MalformedResponse as e:
            logger.error("Malformed elicitation response: %s", e)
            raise

        if isinstance(result, NeedsClarification):
            logger.info("Elicitation needs clarification after %d prior turns", len(prior_turns))
        else:
            logger.info("Elicitation accepted plan '%s' (%d steps)", result.plan.name, len(result.plan.steps))
        return result

    def record_clarification(self, utterance: str, question: str) -> None:
        self.turns = [
            *self.turns,
            ConversationTurn(role="user", text=utterance.strip()),
            ConversationTurn(role="assistant", text=question),
        ]
        self.pending_question = question

    def flatten_prompt(self, utterance: str) -> str:
        """Every user utterance of this session, in order, ending with ``utterance``."""
        texts = [turn.text for turn in self.turns if turn.role == "user"]
        texts.append(utterance.strip())
        return " ".join(texts)

    def reset(self) -> None:
        """Drop the conversation once it has been folded into the workflow prompt."""
        self.turns = []
        self.pending_question = None
        self.previous_plan = None

    def seed_for_refinement(self, prompt: str, plan: Optional[WorkflowPlan]) -> None:
        """Start a new elicitation that builds on an earlier prompt and plan."""
        self.reset()
        if prompt.strip():
            self.turns = [ConversationTurn(role="user", text=prompt.strip())]
        self.previous_plan = plan
