"""AI backend fallback chain.

Provides the ProviderChain (ordered first-success fallback across AI
backends) and the request/outcome schemas it speaks. Production instances
come from vortex.llm.factory.build_provider_chain().
"""

from vortex.llm.schemas import (
    AttemptRecord,
    BackendDescriptor,
    BackendKind,
    ExplainSuccess,
    GenerationRequest,
    GenerationSuccess,
    KeyCheckResult,
    LineExplanation,
    OrchestrationFailure,
    TaskMode,
)
from vortex.llm.chain import ProviderChain

__all__ = [
    "AttemptRecord",
    "BackendDescriptor",
    "BackendKind",
    "ExplainSuccess",
    "GenerationRequest",
    "GenerationSuccess",
    "KeyCheckResult",
    "LineExplanation",
    "OrchestrationFailure",
    "TaskMode",
    "ProviderChain",
]
