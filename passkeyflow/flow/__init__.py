"""Flow session, transition function and orchestrator."""

from .machine import ParAttempt, Transition, transition
from .orchestrator import FlowInitialization, FlowOrchestrator
from .session import FlowFailure, FlowIntent, FlowSession, FlowState, FlowType

__all__ = [
    "FlowFailure",
    "FlowInitialization",
    "FlowIntent",
    "FlowOrchestrator",
    "FlowSession",
    "FlowState",
    "FlowType",
    "ParAttempt",
    "Transition",
    "transition",
]
