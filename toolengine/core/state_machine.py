"""
State machine module for the tool engine.
Tracks the stages of a single tool call and validates transitions.
"""
import logging
from typing import Callable

from toolengine.models.schemas import ExecutionStage

logger = logging.getLogger(__name__)


class StateTransitionError(Exception):
    """Exception raised for invalid state transitions."""
    pass


class ExecutionStateMachine:
    """
    Per-call stage tracker.

    Stage flow:
    PENDING -> LOOKED_UP -> INPUT_VALIDATED -> EXECUTING -> OUTPUT_VALIDATED -> DONE
       |           |              |               |                |
       v           v              v               v                v
     FAILED      FAILED         FAILED          FAILED           FAILED

    DONE and FAILED are terminal. One instance per call; never shared.
    """

    VALID_TRANSITIONS: dict[ExecutionStage, set[ExecutionStage]] = {
        ExecutionStage.PENDING: {ExecutionStage.LOOKED_UP, ExecutionStage.FAILED},
        ExecutionStage.LOOKED_UP: {ExecutionStage.INPUT_VALIDATED, ExecutionStage.FAILED},
        ExecutionStage.INPUT_VALIDATED: {ExecutionStage.EXECUTING, ExecutionStage.FAILED},
        ExecutionStage.EXECUTING: {ExecutionStage.OUTPUT_VALIDATED, ExecutionStage.FAILED},
        ExecutionStage.OUTPUT_VALIDATED: {ExecutionStage.DONE, ExecutionStage.FAILED},
        ExecutionStage.DONE: set(),
        ExecutionStage.FAILED: set(),
    }

    def __init__(self, tool_name: str, initial_stage: ExecutionStage = ExecutionStage.PENDING) -> None:
        self.tool_name = tool_name
        self._current = initial_stage
        self._history: list[ExecutionStage] = [initial_stage]
        self._transition_callbacks: list[Callable[[ExecutionStage, ExecutionStage], None]] = []

    @property
    def current_stage(self) -> ExecutionStage:
        return self._current

    @property
    def history(self) -> list[ExecutionStage]:
        return self._history.copy()

    @property
    def last_active_stage(self) -> ExecutionStage:
        """The last stage reached before FAILED, or the current stage."""
        for stage in reversed(self._history):
            if stage is not ExecutionStage.FAILED:
                return stage
        return self._current

    def can_transition_to(self, target: ExecutionStage) -> bool:
        return target in self.VALID_TRANSITIONS.get(self._current, set())

    def transition(self, target: ExecutionStage) -> ExecutionStage:
        """
        Move to the target stage.

        Args:
            target: Stage to move to

        Returns:
            ExecutionStage: New current stage

        Raises:
            StateTransitionError: If the transition is invalid
        """
        if not self.can_transition_to(target):
            valid = self.VALID_TRANSITIONS.get(self._current, set())
            raise StateTransitionError(
                f"Invalid transition from {self._current.value} to {target.value}. "
                f"Valid transitions: {sorted(s.value for s in valid)}"
            )

        old = self._current
        self._current = target
        self._history.append(target)

        for callback in self._transition_callbacks:
            try:
                callback(old, target)
            except Exception as e:
                logger.error(f"Error in transition callback: {e}")

        logger.debug(f"Tool {self.tool_name}: {old.value} -> {target.value}")
        return self._current

    def fail(self) -> ExecutionStage:
        return self.transition(ExecutionStage.FAILED)

    def register_transition_callback(
        self,
        callback: Callable[[ExecutionStage, ExecutionStage], None]
    ) -> None:
        """
        Register callback for all stage transitions.

        Args:
            callback: Function(old_stage, new_stage) called on transition
        """
        self._transition_callbacks.append(callback)

    def is_terminal(self) -> bool:
        return self._current in {ExecutionStage.DONE, ExecutionStage.FAILED}

    def __repr__(self) -> str:
        return f"ExecutionStateMachine(tool={self.tool_name}, stage={self._current.value})"
