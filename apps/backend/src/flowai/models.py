"""API models for FlowAI."""

from typing import Optional

from pydantic import BaseModel, Field

from .workflow.schema import ConversationTurn


class UtteranceRequest(BaseModel):
    """A reply or description submitted in the Describe step."""

    utterance: Optional[str] = Field(
        None,
        description="Text to submit; when omitted the wizard's input buffer is used",
    )


class InputRequest(BaseModel):
    text: str = Field(..., description="New contents of the wizard input buffer")


class TranscriptionRequest(BaseModel):
    """Recorded audio to transcribe into the input buffer."""

    audio_base64: str = Field(..., description="Base64-encoded audio bytes")
    mime_type: str = Field("audio/webm", description="MIME type of the recording")


class AssistantChatRequest(BaseModel):
    history: list[ConversationTurn] = Field(
        default_factory=list,
        description="Prior chat turns, oldest first",
    )
    message: str


class AssistantChatResponse(BaseModel):
    reply: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "FlowAI Backend"
