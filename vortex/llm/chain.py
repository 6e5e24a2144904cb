"""Ordered fallback across interchangeable AI backends.

Candidate order is absolute:
1. The caller's own backends, in the order supplied
2. The platform chain (fixed priority, only kinds with a platform key)

Candidates are tried strictly one after another. The first non-empty result
wins and nothing after it is invoked. Every failure is normalized into an
AttemptRecord and the chain moves on; only exhausting every candidate
produces an OrchestrationFailure. No backend exception ever reaches the
caller.

generate(), explain() and check_backend() all run through the same
_run_chain() loop and differ only in what counts as a successful attempt.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, TypeVar

from vortex.errors import ErrorKind, classify_backend_error
from vortex.llm.client import parse_explanations
from vortex.llm.modes import ModeRegistry, get_mode_registry
from vortex.llm.schemas import (
    AttemptRecord,
    BackendDescriptor,
    ExplainOutcome,
    ExplainSuccess,
    GenerationOutcome,
    GenerationRequest,
    GenerationSuccess,
    KeyCheckResult,
    LineExplanation,
    OrchestrationFailure,
    TaskMode,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# invoke(prompt, mode, descriptor) -> text
InvokeFn = Callable[[str, TaskMode, BackendDescriptor], str]

NO_BACKEND_MESSAGE = "no backend configured"
EXPLAIN_PROMPT_PREFIX = "Analyze this code and return a JSON array of explanations:"
KEY_CHECK_PROMPT = "Reply with the single word OK."
MAX_ATTEMPT_MESSAGE_CHARS = 500


class _EmptyResult(Exception):
    """Attempt returned nothing usable."""


@dataclass
class Candidate:
    descriptor: BackendDescriptor
    source: str  # "user" or "platform"


@dataclass
class ChainRun:
    """Raw result of one chain execution, before it becomes an outcome."""
    value: object = None
    winner: Optional[BackendDescriptor] = None
    attempts: list[AttemptRecord] = field(default_factory=list)
    candidate_count: int = 0

    @property
    def succeeded(self) -> bool:
        return self.winner is not None


class ProviderChain:
    """Runs generation/explanation requests across a backend fallback chain.

    Args:
        invoke: The backend capability (BackendInvoker in production,
            a stub in tests)
        platform_backends: Platform-configured descriptors in priority order,
            already filtered to kinds that have a credential
        modes: Mode registry supplying per-mode preambles
    """

    def __init__(
        self,
        invoke: InvokeFn,
        platform_backends: Sequence[BackendDescriptor] = (),
        modes: Optional[ModeRegistry] = None,
    ):
        self._invoke = invoke
        self._platform_backends = tuple(platform_backends)
        self._modes = modes or get_mode_registry()

    @property
    def platform_backends(self) -> tuple[BackendDescriptor, ...]:
        return self._platform_backends

    def candidates_for(
        self, user_backends: Optional[Sequence[BackendDescriptor]] = None
    ) -> list[Candidate]:
        """User backends first (caller order), then the platform chain."""
        candidates = [Candidate(d, "user") for d in (user_backends or [])]
        candidates.extend(Candidate(d, "platform") for d in self._platform_backends)
        return candidates

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """Produce text for a request from the first backend that succeeds."""
        prompt = self._modes.build_prompt(request.task_mode, request.prompt)

        def attempt(descriptor: BackendDescriptor) -> str:
            return self._invoke(prompt, request.task_mode, descriptor)

        run = self._run_chain(
            self.candidates_for(request.user_backends),
            attempt,
            label=request.task_mode.value,
        )
        if not run.succeeded:
            return self._failure(run)
        return GenerationSuccess(
            text=run.value,
            backend_used=run.winner.kind,
            attempts=run.attempts,
        )

    def explain(
        self,
        code: str,
        user_backends: Optional[Sequence[BackendDescriptor]] = None,
    ) -> ExplainOutcome:
        """Line-by-line explanation of code.

        Same chain as generate(); a response that does not parse into
        LineExplanation items is an invalid_response attempt and the next
        candidate is tried.
        """
        if not code or not code.strip():
            raise ValueError("code must not be empty")

        prompt = self._modes.build_prompt(
            TaskMode.EXPLAIN, f"{EXPLAIN_PROMPT_PREFIX}\n\n{code}"
        )

        def attempt(descriptor: BackendDescriptor) -> list[LineExplanation]:
            raw_text = self._invoke(prompt, TaskMode.EXPLAIN, descriptor)
            return parse_explanations(raw_text)

        run = self._run_chain(self.candidates_for(user_backends), attempt, label="explain")
        if not run.succeeded:
            return self._failure(run)
        return ExplainSuccess(
            explanations=run.value,
            backend_used=run.winner.kind,
            attempts=run.attempts,
        )

    def check_backend(self, descriptor: BackendDescriptor) -> KeyCheckResult:
        """Validate a single backend config with a trivial round-trip."""

        def attempt(d: BackendDescriptor) -> str:
            return self._invoke(KEY_CHECK_PROMPT, TaskMode.GENERATE, d)

        run = self._run_chain([Candidate(descriptor, "user")], attempt, label="key-check")
        if run.succeeded:
            return KeyCheckResult(
                success=True,
                backend_kind=descriptor.kind,
                message="API key is valid and working",
            )
        record = run.attempts[0]
        return KeyCheckResult(
            success=False,
            backend_kind=descriptor.kind,
            error_kind=record.error_kind,
            message=record.message,
        )

    # ------------------------------------------------------------------
    # Chain algorithm
    # ------------------------------------------------------------------

    def _run_chain(
        self,
        candidates: list[Candidate],
        attempt: Callable[[BackendDescriptor], T],
        label: str,
    ) -> ChainRun:
        """Try candidates in order; the first successful attempt wins.

        An attempt succeeds when it returns a non-empty value without raising.
        """
        run = ChainRun(candidate_count=len(candidates))
        if not candidates:
            logger.warning(
                f"[chain:{label}] {NO_BACKEND_MESSAGE} (no user config, no platform keys)"
            )
            return run

        total = len(candidates)
        for index, candidate in enumerate(candidates, start=1):
            kind = candidate.descriptor.kind
            logger.info(
                f"[chain:{label}] Attempting {candidate.source} {kind.value} ({index}/{total})"
            )
            try:
                value = attempt(candidate.descriptor)
                if not value or (isinstance(value, str) and not value.strip()):
                    raise _EmptyResult(f"Empty response from {kind.value}")
            except Exception as e:
                error_kind = (
                    ErrorKind.INVALID_RESPONSE
                    if isinstance(e, _EmptyResult)
                    else classify_backend_error(e)
                )
                message = str(e)[:MAX_ATTEMPT_MESSAGE_CHARS] or type(e).__name__
                run.attempts.append(
                    AttemptRecord(backend_kind=kind, error_kind=error_kind, message=message)
                )
                logger.warning(
                    f"[chain:{label}] {candidate.source} {kind.value} failed "
                    f"({error_kind.value}): {message}"
                )
                continue

            run.value = value
            run.winner = candidate.descriptor
            if run.attempts:
                logger.info(
                    f"[chain:{label}] Succeeded with {kind.value} after "
                    f"{len(run.attempts)} failed attempt(s)"
                )
            return run

        logger.error(
            f"[chain:{label}] All {total} backend(s) failed: "
            + ", ".join(f"{a.backend_kind.value}={a.error_kind.value}" for a in run.attempts)
        )
        return run

    @staticmethod
    def _failure(run: ChainRun) -> OrchestrationFailure:
        failure = OrchestrationFailure(
            attempts=run.attempts, unavailable=run.candidate_count == 0
        )
        failure.message = failure.summary()
        return failure

