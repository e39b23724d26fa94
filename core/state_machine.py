"""
State Machine
-------------
Lifecycle of the media orchestrator with validated transitions.
Every transition is logged and kept in history.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Set
import logging


class OrchestratorState(Enum):
    """Lifecycle states of the media orchestrator."""
    UNINITIALIZED = auto()  # Constructed, nothing opened
    INITIALIZING = auto()   # Session configured, streams opening
    READY = auto()          # All sessions usable
    DISPOSED = auto()       # Handles released, instance is spent


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: OrchestratorState
    to_state: OrchestratorState
    timestamp: datetime
    reason: str
    metadata: Dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"StateTransition({self.from_state.name} → {self.to_state.name}, "
            f"reason='{self.reason}')"
        )


VALID_TRANSITIONS: Dict[OrchestratorState, Set[OrchestratorState]] = {
    OrchestratorState.UNINITIALIZED: {OrchestratorState.INITIALIZING, OrchestratorState.DISPOSED},
    OrchestratorState.INITIALIZING: {
        OrchestratorState.READY, OrchestratorState.UNINITIALIZED, OrchestratorState.DISPOSED,
    },
    OrchestratorState.READY: {OrchestratorState.DISPOSED},
    OrchestratorState.DISPOSED: set(),  # Terminal
}


class StateMachine:
    """
    State machine for the media orchestrator.

    Responsibilities:
    - Track current state
    - Validate state transitions
    - Log all transitions
    - Notify listeners of state changes
    """

    def __init__(self, initial_state: OrchestratorState = OrchestratorState.UNINITIALIZED):
        self._state = initial_state
        self._history: List[StateTransition] = []
        self._listeners: List[Callable[[StateTransition], None]] = []
        self._logger = logging.getLogger("mediakeep.state")

        self._logger.debug(f"State machine created in state: {self._state.name}")

    @property
    def state(self) -> OrchestratorState:
        """Get current state."""
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        """Get transition history."""
        return self._history.copy()

    def can_transition(self, to_state: OrchestratorState) -> bool:
        """Check if transition to given state is valid."""
        return to_state in VALID_TRANSITIONS.get(self._state, set())

    def transition(
        self,
        to_state: OrchestratorState,
        reason: str,
        metadata: Optional[Dict] = None
    ) -> StateTransition:
        """
        Transition to a new state.

        Args:
            to_state: Target state
            reason: Human-readable reason for transition
            metadata: Optional additional data

        Returns:
            StateTransition record

        Raises:
            ValueError: If transition is not valid
        """
        if not self.can_transition(to_state):
            valid_names = [s.name for s in VALID_TRANSITIONS.get(self._state, set())]
            raise ValueError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid targets: {valid_names}"
            )

        transition = StateTransition(
            from_state=self._state,
            to_state=to_state,
            timestamp=datetime.now(),
            reason=reason,
            metadata=metadata or {}
        )

        old_state = self._state
        self._state = to_state
        self._history.append(transition)

        self._logger.info(
            f"State transition: {old_state.name} → {to_state.name} "
            f"(reason: {reason})"
        )

        for listener in self._listeners:
            try:
                listener(transition)
            except Exception as e:
                self._logger.warning(f"Listener error: {e}")

        return transition

    def add_listener(self, callback: Callable[[StateTransition], None]) -> None:
        """Add a state change listener."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[StateTransition], None]) -> None:
        """Remove a state change listener."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    @property
    def is_ready(self) -> bool:
        return self._state == OrchestratorState.READY

    def get_history_summary(self) -> str:
        """Get a human-readable summary of recent transitions."""
        if not self._history:
            return "No transitions recorded."

        lines = ["State Transition History:", "-" * 40]

        for t in self._history[-10:]:
            lines.append(
                f"  {t.timestamp.strftime('%H:%M:%S')} | "
                f"{t.from_state.name:13} → {t.to_state.name:13} | "
                f"{t.reason}"
            )

        return "\n".join(lines)
