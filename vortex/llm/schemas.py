"""Request/outcome schemas for the provider chain.

A request names the task and, optionally, the caller's own backend configs.
An outcome is either a success (text + which backend produced it) or an
OrchestrationFailure listing every attempt that was made.
"""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vortex.errors import ErrorKind


class BackendKind(str, Enum):
    """Known AI backend identifiers."""
    GEMINI = "gemini"
    MISTRAL = "mistral"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    GROQ = "groq"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class TaskMode(str, Enum):
    """What the caller wants done with the prompt."""
    GENERATE = "generate"
    TEST = "test"
    DOCUMENT = "document"
    REFACTOR = "refactor"
    BOILERPLATE = "boilerplate"
    EXPLAIN = "explain"


class BackendDescriptor(BaseModel):
    """One concrete backend to try: kind, secret, optional model and endpoint."""

    model_config = ConfigDict(frozen=True)

    kind: BackendKind
    credential: str = Field(repr=False, min_length=1)
    model: Optional[str] = None
    endpoint_override: Optional[str] = None

    @field_validator("credential")
    @classmethod
    def _strip_credential(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("credential must not be blank")
        return value


class GenerationRequest(BaseModel):
    """A single generate call. Lives for one chain execution."""

    prompt: str
    task_mode: TaskMode = TaskMode.GENERATE
    user_backends: list[BackendDescriptor] = Field(
        default_factory=list,
        description="Caller-supplied backends, tried first and in this order",
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value


class AttemptRecord(BaseModel):
    """One failed candidate."""

    backend_kind: BackendKind
    error_kind: ErrorKind
    message: str = ""


class GenerationSuccess(BaseModel):
    text: str
    backend_used: BackendKind
    attempts: list[AttemptRecord] = Field(
        default_factory=list,
        description="Failed attempts that preceded the winning backend",
    )


class OrchestrationFailure(BaseModel):
    """Every candidate failed, or there were no candidates at all.

    `unavailable` is True only when no backend was configured; in that case
    `attempts` is empty. Otherwise there is one record per backend tried.
    """

    attempts: list[AttemptRecord] = Field(default_factory=list)
    unavailable: bool = False
    message: str = ""

    def backend_kinds_attempted(self) -> list[BackendKind]:
        return [a.backend_kind for a in self.attempts]

    def summary(self) -> str:
        """Single human-readable message for the route layer."""
        if self.unavailable:
            return (
                "No AI backend is configured. Add an API key in Settings "
                "or configure a platform key."
            )
        tried = ", ".join(k.value for k in self.backend_kinds_attempted())
        return (
            f"All configured AI backends failed ({tried}). "
            f"Please check your API keys or try again later."
        )


class LineExplanation(BaseModel):
    """Explanation of one line (or group of lines) of code."""

    model_config = ConfigDict(populate_by_name=True)

    line_number: int = Field(alias="lineNumber", ge=1)
    code: str
    explanation: str
    risk_level: Optional[Literal["low", "medium", "high"]] = Field(default=None, alias="riskLevel")
    performance_note: Optional[str] = Field(default=None, alias="performanceNote")
    security_issue: Optional[str] = Field(default=None, alias="securityIssue")


class ExplainSuccess(BaseModel):
    explanations: list[LineExplanation]
    backend_used: BackendKind
    attempts: list[AttemptRecord] = Field(default_factory=list)


class KeyCheckResult(BaseModel):
    """Result of validating a single backend config."""

    success: bool
    backend_kind: BackendKind
    error_kind: Optional[ErrorKind] = None
    message: str = ""


GenerationOutcome = Union[GenerationSuccess, OrchestrationFailure]
ExplainOutcome = Union[ExplainSuccess, OrchestrationFailure]
