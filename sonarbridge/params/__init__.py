"""Scanner parameter builder — detect stacks and produce invocation properties."""

from sonarbridge.params.builder import ParameterBuilder
from sonarbridge.params.probes import ProbeResult, ProbeStatus
from sonarbridge.params.registry import BUILDER_REGISTRY, StackBuilder

__all__ = ["BUILDER_REGISTRY", "ParameterBuilder", "ProbeResult", "ProbeStatus", "StackBuilder"]
