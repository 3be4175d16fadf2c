"""
Conversion orchestration engine.

Routes files through pluggable converters in generations, merges folder
groups, and re-identifies the results.
"""

from .base import Converter, ConverterCapability, HopOutput
from .consistency import ConsistencyChecker
from .context import ConversionContext
from .converter_registry import ConverterRegistry, build_default_registry
from .errors import (
    ConversionError,
    ConversionFailedError,
    HopTimeoutError,
    MergeError,
    NoConvertersAvailableError,
    NoInputFilesError,
    OutputVerificationError,
    ResourceUnavailableError,
    ToolNotFoundError,
)
from .merge import MergePipeline, plan_groups
from .progress import SchedulerProgress
from .resources import IccProfile, IccProfilePool, ResourcePool
from .results import GenerationReport, HopOutcome, HopStatus, RunSummary
from .retry import MAX_RETRIES, retry
from .routes import DEFAULT_CHAINS, ChainRule, RouteResolver, RouteTable
from .runner import ConversionRunner
from .scheduler import ConversionScheduler
from .tasks import ConversionTask, TaskState, WorkingSet
from .timeouts import call_with_timeout

__all__ = [
    # Converters
    "Converter",
    "ConverterCapability",
    "HopOutput",
    "ConverterRegistry",
    "build_default_registry",
    # Routing and scheduling
    "ChainRule",
    "DEFAULT_CHAINS",
    "RouteResolver",
    "RouteTable",
    "ConversionTask",
    "TaskState",
    "WorkingSet",
    "ConversionScheduler",
    "SchedulerProgress",
    "ConversionContext",
    "ConversionRunner",
    "MergePipeline",
    "plan_groups",
    "ConsistencyChecker",
    # Primitives
    "MAX_RETRIES",
    "retry",
    "call_with_timeout",
    "ResourcePool",
    "IccProfile",
    "IccProfilePool",
    # Results
    "HopOutcome",
    "HopStatus",
    "GenerationReport",
    "RunSummary",
    # Errors
    "ConversionError",
    "ConversionFailedError",
    "HopTimeoutError",
    "MergeError",
    "NoConvertersAvailableError",
    "NoInputFilesError",
    "OutputVerificationError",
    "ResourceUnavailableError",
    "ToolNotFoundError",
]
