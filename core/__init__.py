# Core module - Error taxonomy and orchestrator state
# The orchestrator itself lives in core.orchestrator (imported directly,
# it depends on the audio, playback and infra layers)

from .state_machine import StateMachine, OrchestratorState, StateTransition
from .errors import (
    ErrorHandler, ErrorCategory, ErrorRecord,
    MediaError, NotInitializedError, DeviceError,
    SourceError, DecodeError, RecordingError,
)

__all__ = [
    "StateMachine", "OrchestratorState", "StateTransition",
    "ErrorHandler", "ErrorCategory", "ErrorRecord",
    "MediaError", "NotInitializedError", "DeviceError",
    "SourceError", "DecodeError", "RecordingError",
]
