"""sonarbridge: scan orchestration for an external static-analysis service."""

__version__ = "0.1.0"

from sonarbridge.config import EngineSettings
from sonarbridge.exceptions import ClassifiedError, ErrorKind, LockBusyError
from sonarbridge.locking import ProjectLockManager
from sonarbridge.models import AnalysisTask, InvocationParameterSet, ScanRequest, StackKind, TaskStatus
from sonarbridge.orchestrator import ScanOrchestrator, build_orchestrator
from sonarbridge.params import ParameterBuilder
from sonarbridge.poller import AnalysisPoller

__all__ = [
    "AnalysisPoller",
    "AnalysisTask",
    "ClassifiedError",
    "EngineSettings",
    "ErrorKind",
    "InvocationParameterSet",
    "LockBusyError",
    "ParameterBuilder",
    "ProjectLockManager",
    "ScanOrchestrator",
    "ScanRequest",
    "StackKind",
    "TaskStatus",
    "build_orchestrator",
]
