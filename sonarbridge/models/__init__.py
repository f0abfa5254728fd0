from sonarbridge.models.lock import LockHandle, LockRecord
from sonarbridge.models.params import InvocationParameterSet, ParamOrigin
from sonarbridge.models.scan import (
    AnalysisTask,
    Issue,
    ScanInvocation,
    ScannerKind,
    ScanRequest,
    TaskStatus,
)
from sonarbridge.models.stack import StackKind, TechStack

__all__ = [
    "AnalysisTask",
    "InvocationParameterSet",
    "Issue",
    "LockHandle",
    "LockRecord",
    "ParamOrigin",
    "ScanInvocation",
    "ScanRequest",
    "ScannerKind",
    "StackKind",
    "TaskStatus",
    "TechStack",
]
