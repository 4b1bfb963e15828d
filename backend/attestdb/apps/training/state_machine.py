# backend/attestdb/apps/training/state_machine.py
"""
Session and module lifecycle transitions.

Pure lookups over fixed tables: every (state, event) pair that is not listed
raises StateTransitionError. Nothing here touches the database.
"""

from __future__ import annotations

import enum
from typing import Dict, FrozenSet, Tuple

from ...errors import Conflict


class SessionStatus(str, enum.Enum):
    CURRICULUM_GENERATING = "curriculum-generating"
    IN_PROGRESS = "in-progress"
    IN_REMEDIATION = "in-remediation"
    EVALUATING = "evaluating"
    PASSED = "passed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


class ModuleStatus(str, enum.Enum):
    LOCKED = "locked"
    CONTENT_GENERATING = "content-generating"
    LEARNING = "learning"
    SCENARIO_ACTIVE = "scenario-active"
    QUIZ_ACTIVE = "quiz-active"
    SCORED = "scored"


class SessionEvent(str, enum.Enum):
    CURRICULUM_READY = "curriculum-ready"
    ALL_MODULES_SCORED = "all-modules-scored"
    EVALUATION_PASSED = "evaluation-passed"
    EVALUATION_FAILED = "evaluation-failed"
    EVALUATION_EXHAUSTED = "evaluation-exhausted"
    REMEDIATION_STARTED = "remediation-started"
    SESSION_ABANDONED = "session-abandoned"


class ModuleEvent(str, enum.Enum):
    GENERATE_CONTENT = "generate-content"
    CONTENT_READY = "content-ready"
    CONTENT_FAILED = "content-failed"
    START_SCENARIO = "start-scenario"
    SCENARIOS_COMPLETE = "scenarios-complete"
    QUIZ_SCORED = "quiz-scored"


class StateTransitionError(Conflict):
    code = "invalid_transition"

    def __init__(self, current_state: str, event: str) -> None:
        current_state = getattr(current_state, "value", current_state)
        event = getattr(event, "value", event)
        super().__init__(f"Invalid transition: cannot apply event '{event}' in state '{current_state}'")
        self.current_state = current_state
        self.event = event


S = SessionStatus
M = ModuleStatus

SESSION_TRANSITIONS: Dict[SessionStatus, Dict[SessionEvent, SessionStatus]] = {
    S.CURRICULUM_GENERATING: {
        SessionEvent.CURRICULUM_READY: S.IN_PROGRESS,
    },
    S.IN_PROGRESS: {
        SessionEvent.ALL_MODULES_SCORED: S.EVALUATING,
        SessionEvent.SESSION_ABANDONED: S.ABANDONED,
    },
    S.IN_REMEDIATION: {
        SessionEvent.ALL_MODULES_SCORED: S.EVALUATING,
        SessionEvent.SESSION_ABANDONED: S.ABANDONED,
    },
    S.EVALUATING: {
        SessionEvent.EVALUATION_PASSED: S.PASSED,
        SessionEvent.EVALUATION_FAILED: S.FAILED,
        SessionEvent.EVALUATION_EXHAUSTED: S.EXHAUSTED,
    },
    S.FAILED: {
        SessionEvent.REMEDIATION_STARTED: S.IN_REMEDIATION,
    },
}

# content-failed rolls a module back to locked when generation fails so the
# employee can retry.
MODULE_TRANSITIONS: Dict[ModuleStatus, Dict[ModuleEvent, ModuleStatus]] = {
    M.LOCKED: {
        ModuleEvent.GENERATE_CONTENT: M.CONTENT_GENERATING,
    },
    M.CONTENT_GENERATING: {
        ModuleEvent.CONTENT_READY: M.LEARNING,
        ModuleEvent.CONTENT_FAILED: M.LOCKED,
    },
    M.LEARNING: {
        ModuleEvent.START_SCENARIO: M.SCENARIO_ACTIVE,
    },
    M.SCENARIO_ACTIVE: {
        ModuleEvent.SCENARIOS_COMPLETE: M.QUIZ_ACTIVE,
    },
    M.QUIZ_ACTIVE: {
        ModuleEvent.QUIZ_SCORED: M.SCORED,
    },
}

SESSION_TERMINAL_STATES: FrozenSet[SessionStatus] = frozenset({S.PASSED, S.EXHAUSTED, S.ABANDONED})
MODULE_TERMINAL_STATES: FrozenSet[ModuleStatus] = frozenset({M.SCORED})

# Sessions that block starting a new one. `failed` is resumable through
# remediation and so is not listed.
SESSION_ACTIVE_STATES: FrozenSet[SessionStatus] = frozenset(
    {S.CURRICULUM_GENERATING, S.IN_PROGRESS, S.IN_REMEDIATION, S.EVALUATING}
)


def _lookup(table: dict, state_type: type, event_type: type, state: str, event: str):
    try:
        target = table.get(state_type(state), {}).get(event_type(event))
    except ValueError:
        target = None
    if target is None:
        raise StateTransitionError(state, event)
    return target


def transition_session(status: SessionStatus | str, event: SessionEvent | str) -> SessionStatus:
    return _lookup(SESSION_TRANSITIONS, SessionStatus, SessionEvent, status, event)


def transition_module(status: ModuleStatus | str, event: ModuleEvent | str) -> ModuleStatus:
    return _lookup(MODULE_TRANSITIONS, ModuleStatus, ModuleEvent, status, event)


def apply_session_event(
    status: SessionStatus | str,
    attempt_number: int,
    event: SessionEvent | str,
) -> Tuple[SessionStatus, int]:
    """
    Like transition_session, but also returns the attempt number the session
    carries after the event. Only remediation-started advances it.
    """
    target = transition_session(status, event)
    if SessionEvent(event) == SessionEvent.REMEDIATION_STARTED:
        return target, attempt_number + 1
    return target, attempt_number


def can_transition_session(status: SessionStatus | str, event: SessionEvent | str) -> bool:
    try:
        transition_session(status, event)
    except StateTransitionError:
        return False
    return True


def can_transition_module(status: ModuleStatus | str, event: ModuleEvent | str) -> bool:
    try:
        transition_module(status, event)
    except StateTransitionError:
        return False
    return True


def is_session_terminal(status: SessionStatus | str) -> bool:
    try:
        return SessionStatus(status) in SESSION_TERMINAL_STATES
    except ValueError:
        return False


def is_module_terminal(status: ModuleStatus | str) -> bool:
    try:
        return ModuleStatus(status) in MODULE_TERMINAL_STATES
    except ValueError:
        return False
