"""Persona workflow: transition graph, commit message rules and the active context document."""

from hookgate.workflow.context_document import (
    ContextDocument,
    ContextDocumentError,
    ContextStore,
    HistoryEntry,
)
from hookgate.workflow.messages import MessageValidation, MessageValidator, commit_subject
from hookgate.workflow.personas import (
    TRANSITIONS,
    TransitionCheck,
    validate_step_progression,
    validate_transition,
)
from hookgate.workflow.synchronizer import (
    CommitInfo,
    ConsistencyReport,
    ContextSynchronizer,
    UpdateResult,
)

__all__ = [
    "TRANSITIONS",
    "CommitInfo",
    "ConsistencyReport",
    "ContextDocument",
    "ContextDocumentError",
    "ContextStore",
    "ContextSynchronizer",
    "HistoryEntry",
    "MessageValidation",
    "MessageValidator",
    "TransitionCheck",
    "UpdateResult",
    "commit_subject",
    "validate_step_progression",
    "validate_transition",
]
