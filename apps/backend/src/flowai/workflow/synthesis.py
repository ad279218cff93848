"""Apps Script synthesis from an accepted plan."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ..errors import SynthesisFailure
from .schema import WorkflowPlan

if TYPE_CHECKING:
    from ..llm.client import CompletionClient

logger = logging.getLogger(__name__)

SCRIPT_SYSTEM_PROMPT = """\
You are an expert Google Apps Script engineer. You write production-ready
scripts using modern ES6+ syntax with robust error handling.
Return only code: no prose, no explanations.
"""

SCRIPT_PROMPT = """\
Generate a production-ready Google Apps Script implementing this plan:

<plan>
{plan_json}
</plan>

<user_request>
{prompt}
</user_request>
"""

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*")


def strip_code_fences(text: str) -> str:
    """Remove markdown fence markers (```javascript, ```js, ```) and surrounding whitespace."""
    return _FENCE_RE.sub("", text).strip()


async def synthesize_script(client: CompletionClient, plan: WorkflowPlan, prompt: str) -> str:
    """Generate the script for ``plan``. Raises SynthesisFailure on empty output."""
    raw = await client.request_text_completion(
        SCRIPT_PROMPT.format(plan_json=plan.model_dump_json(indent=2), prompt=prompt),
        system_prompt=SCRIPT_SYSTEM_PROMPT,
    )
    script = strip_code_fences(raw)
    if not script:
        logger.error("Script synthesis for '%s' returned no code", plan.name)
        raise SynthesisFailure("Code generation returned no script")

    logger.info("Synthesized %d characters of Apps Script for '%s'", len(script), plan.name)
    return script
