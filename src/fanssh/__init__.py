"""fanssh: Run a command or send a file on many SSH hosts at once."""

from .config import HostTarget, PushFile, RunCommand, Settings, resolve_operation, resolve_targets
from .errors import (
    ConfigurationError,
    ConnectFailure,
    FanoutError,
    KeyLoadError,
    ListParseWarning,
    OperationFailure,
)
from .executor import Executor, NodeState, NodeStatus, run_all
from .outcome import Outcome, OutcomeKind, OutputSink
from .transport import Transport

__all__ = [
    "HostTarget",
    "PushFile",
    "RunCommand",
    "Settings",
    "resolve_operation",
    "resolve_targets",
    "ConfigurationError",
    "ConnectFailure",
    "FanoutError",
    "KeyLoadError",
    "ListParseWarning",
    "OperationFailure",
    "Executor",
    "NodeState",
    "NodeStatus",
    "run_all",
    "Outcome",
    "OutcomeKind",
    "OutputSink",
    "Transport",
]
