import base64
import binascii
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .assistant import chat_with_assistant
from .config import get_settings
from .errors import FlowAIError
from .llm.client import CompletionClient
from .logging_config import setup_logging
from .models import (
    AssistantChatRequest,
    AssistantChatResponse,
    HealthResponse,
    InputRequest,
    TranscriptionRequest,
    UtteranceRequest,
)
from .workflow.elicitation import NeedsClarification
from .workflow.schema import Workflow
from .workflow.store import WorkflowStore
from .workflow.wizard import WizardStateMachine

load_dotenv()
setup_logging()

logger = logging.getLogger(__name__)

settings = get_settings()
WORKFLOWS_DIR = settings.workflows_dir or Path.cwd() / "workflows"

workflow_store = WorkflowStore(WORKFLOWS_DIR)
completion_client = CompletionClient(settings)

# One live wizard per workflow id; dropped on close or delete.
wizards: dict[str, WizardStateMachine] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await completion_client.aclose()


app = FastAPI(
    title="FlowAI API",
    description="Turn natural-language automation requests into plans and Google Apps Script",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FlowAIError)
async def flowai_error_handler(request: Request, exc: FlowAIError):
    logger.warning("%s %s failed (%s): %s", request.method, request.url.path, exc.error_type, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error_type": exc.error_type},
    )


def _dump(workflow: Workflow) -> dict:
    return workflow.model_dump(mode="json", by_alias=True)


def _persist(workflow: Workflow) -> None:
    workflow_store.save(workflow)


def _get_wizard(workflow_id: str) -> WizardStateMachine:
    wizard = wizards.get(workflow_id)
    if wizard is not None and not wizard.closed:
        return wizard

    workflow = workflow_store.load(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")

    wizard = WizardStateMachine(workflow, completion_client, on_update=_persist)
    wizards[workflow_id] = wizard
    return wizard


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# --- Workflow records ---

@app.post("/api/workflows")
def create_workflow():
    workflow = Workflow()
    workflow_store.save(workflow)
    return _dump(workflow)


@app.get("/api/workflows")
def list_workflows():
    return [_dump(wf) for wf in workflow_store.list_all()]


@app.get("/api/workflows/{workflow_id}")
def get_workflow(workflow_id: str):
    wf = workflow_store.load(workflow_id)
    if wf is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return _dump(wf)


@app.delete("/api/workflows/{workflow_id}")
def delete_workflow(workflow_id: str):
    wizard = wizards.get(workflow_id)
    if wizard is not None:
        # Raises SessionBusy while a request is in flight, so it can't re-save afterwards.
        wizard.close()
        wizards.pop(workflow_id, None)

    deleted = workflow_store.delete(workflow_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"status": "deleted", "workflow_id": workflow_id}


# --- Wizard ---

@app.get("/api/workflows/{workflow_id}/wizard")
def get_wizard(workflow_id: str):
    return _get_wizard(workflow_id).snapshot()


@app.post("/api/workflows/{workflow_id}/wizard/input")
def set_wizard_input(workflow_id: str, request: InputRequest):
    wizard = _get_wizard(workflow_id)
    wizard.set_input(request.text)
    return wizard.snapshot()


@app.post("/api/workflows/{workflow_id}/wizard/utterances")
async def submit_utterance(workflow_id: str, request: UtteranceRequest):
    wizard = _get_wizard(workflow_id)
    outcome = await wizard.submit_utterance(request.utterance)

    if isinstance(outcome, NeedsClarification):
        return {"type": "clarification", "question": outcome.question, "wizard": wizard.snapshot()}
    return {"type": "plan", "workflow": _dump(outcome), "wizard": wizard.snapshot()}


@app.post("/api/workflows/{workflow_id}/wizard/transcriptions")
async def transcribe(workflow_id: str, request: TranscriptionRequest):
    wizard = _get_wizard(workflow_id)
    try:
        audio = base64.b64decode(request.audio_base64, validate=True)
    except binascii.Error as e:
        raise HTTPException(status_code=422, detail=f"audio_base64 is not valid base64: {e}")

    await wizard.transcribe(audio, request.mime_type)
    return wizard.snapshot()


@app.post("/api/workflows/{workflow_id}/wizard/synthesis")
async def request_synthesis(workflow_id: str):
    wizard = _get_wizard(workflow_id)
    workflow = await wizard.request_synthesis()
    return {"workflow": _dump(workflow), "wizard": wizard.snapshot()}


@app.post("/api/workflows/{workflow_id}/wizard/refine")
def refine(workflow_id: str):
    wizard = _get_wizard(workflow_id)
    workflow = wizard.refine()
    return {"workflow": _dump(workflow), "wizard": wizard.snapshot()}


@app.post("/api/workflows/{workflow_id}/wizard/close")
def close_wizard(workflow_id: str):
    wizard = _get_wizard(workflow_id)
    workflow = wizard.close()
    wizards.pop(workflow_id, None)
    return _dump(workflow)


# --- Assistant ---

@app.post("/api/assistant/chat", response_model=AssistantChatResponse)
async def assistant_chat(request: AssistantChatRequest):
    reply = await chat_with_assistant(completion_client, request.history, request.message)
    return AssistantChatResponse(reply=reply)
