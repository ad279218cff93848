"""Error taxonomy shared by the elicitation core, the completion client and the API."""


class FlowAIError(Exception):
    """Base error. ``error_type`` is machine-readable; ``status_code`` is used by the API."""

    error_type: str = "flowai_error"
    status_code: int = 500

    def __init__(self, message: str, error_type: str | None = None):
        if error_type is not None:
            self.error_type = error_type
        super().__init__(message)


class EmptyInput(FlowAIError):
    """An utterance or message had no content after trimming."""

    error_type = "empty_input"
    status_code = 422


class MalformedResponse(FlowAIError):
    """The completion service returned output that does not match the expected shape."""

    error_type = "malformed_response"
    status_code = 502


class SynthesisFailure(FlowAIError):
    """Code generation returned no usable script."""

    error_type = "synthesis_failure"
    status_code = 502


class CapabilityUnavailable(FlowAIError):
    """Transport-level failure talking to the completion service."""

    error_type = "capability_unavailable"
    status_code = 503


class IllegalTransition(FlowAIError):
    """The requested wizard event is not allowed in the current step."""

    error_type = "illegal_transition"
    status_code = 409


class SessionBusy(FlowAIError):
    """Another request for the same wizard is still in flight."""

    error_type = "session_busy"
    status_code = 409


class WorkflowNotFound(FlowAIError):
    error_type = "not_found"
    status_code = 404
