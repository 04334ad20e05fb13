"""passkeyflow: Passkey authorization protocol orchestration."""

from .config import PasskeyFlowConfig, load_config
from .contracts import CommandMessage, EventMessage, ResultMessage, parse_message
from .errors import FailureCode, PasskeyFlowError
from .flow import FlowIntent, FlowOrchestrator, FlowSession, FlowState, FlowType
from .par import PARClient, PARRequest, PARResult
from .protocol import WindowMessageProtocol
from .stepup import SimulatedStepUpChallenger, StepUpChallenger

__version__ = "0.1.0"
__all__ = [
    "CommandMessage",
    "EventMessage",
    "FailureCode",
    "FlowIntent",
    "FlowOrchestrator",
    "FlowSession",
    "FlowState",
    "FlowType",
    "PARClient",
    "PARRequest",
    "PARResult",
    "PasskeyFlowConfig",
    "PasskeyFlowError",
    "ResultMessage",
    "SimulatedStepUpChallenger",
    "StepUpChallenger",
    "WindowMessageProtocol",
    "load_config",
    "parse_message",
]
