"""
Core package for the tool engine.
"""
from toolengine.core.state_machine import ExecutionStateMachine, StateTransitionError

__all__ = [
    "ExecutionStateMachine",
    "StateTransitionError",
]
