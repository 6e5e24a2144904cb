import pytest

from conftest import StubInvoker, descriptor
from vortex.errors import ErrorKind
from vortex.llm.chain import ProviderChain
from vortex.llm.schemas import BackendKind, ExplainSuccess, OrchestrationFailure, TaskMode

VALID = '[{"lineNumber": 1, "code": "console.log(1)", "explanation": "Logs 1"}]'


def _chain(invoker: StubInvoker) -> ProviderChain:
    return ProviderChain(
        invoker,
        platform_backends=[
            descriptor(BackendKind.GEMINI),
            descriptor(BackendKind.ANTHROPIC),
        ],
    )


def test_malformed_first_then_valid_second() -> None:
    invoker = StubInvoker({
        BackendKind.GEMINI: "Sure! Here is the analysis: {not json",
        BackendKind.ANTHROPIC: VALID,
    })

    outcome = _chain(invoker).explain("console.log(1)")

    assert isinstance(outcome, ExplainSuccess)
    assert outcome.backend_used == BackendKind.ANTHROPIC
    assert len(outcome.explanations) == 1
    item = outcome.explanations[0]
    assert item.line_number == 1
    assert item.code == "console.log(1)"
    assert item.explanation == "Logs 1"
    assert len(outcome.attempts) == 1
    assert outcome.attempts[0].backend_kind == BackendKind.GEMINI
    assert outcome.attempts[0].error_kind == ErrorKind.INVALID_RESPONSE


def test_fenced_json_is_accepted() -> None:
    invoker = StubInvoker({BackendKind.GEMINI: f"```json\n{VALID}\n```"})

    outcome = _chain(invoker).explain("console.log(1)")

    assert isinstance(outcome, ExplainSuccess)
    assert outcome.backend_used == BackendKind.GEMINI
    assert invoker.kinds_called == [BackendKind.GEMINI]


def test_wrapped_object_and_optional_fields() -> None:
    invoker = StubInvoker({
        BackendKind.GEMINI: (
            '{"explanations": [{"lineNumber": 2, "code": "eval(x)", '
            '"explanation": "Evaluates x", "riskLevel": "high", '
            '"securityIssue": "Arbitrary code execution"}]}'
        ),
    })

    outcome = _chain(invoker).explain("let x = 1\neval(x)")

    item = outcome.explanations[0]
    assert item.risk_level == "high"
    assert item.security_issue == "Arbitrary code execution"
    assert item.performance_note is None


@pytest.mark.parametrize(
    "bad_reply",
    [
        '{"lineNumber": 1}',
        "[]",
        '[{"lineNumber": 0, "code": "x", "explanation": "y"}]',
        '[{"lineNumber": 1, "code": "x", "explanation": "y", "riskLevel": "extreme"}]',
    ],
)
def test_wrong_shapes_are_invalid_response(bad_reply: str) -> None:
    invoker = StubInvoker({BackendKind.GEMINI: bad_reply, BackendKind.ANTHROPIC: VALID})

    outcome = _chain(invoker).explain("x")

    assert outcome.backend_used == BackendKind.ANTHROPIC
    assert outcome.attempts[0].error_kind == ErrorKind.INVALID_RESPONSE


def test_all_malformed_is_failure() -> None:
    invoker = StubInvoker({BackendKind.GEMINI: "nope", BackendKind.ANTHROPIC: "still nope"})

    outcome = _chain(invoker).explain("x")

    assert isinstance(outcome, OrchestrationFailure)
    assert not outcome.unavailable
    assert [a.error_kind for a in outcome.attempts] == [ErrorKind.INVALID_RESPONSE] * 2


def test_explain_uses_explain_mode() -> None:
    invoker = StubInvoker({BackendKind.GEMINI: VALID})

    _chain(invoker).explain("console.log(1)")

    prompt, mode, _ = invoker.calls[0]
    assert mode == TaskMode.EXPLAIN
    assert prompt.endswith("console.log(1)")
    assert "lineNumber" in prompt


def test_empty_code_rejected() -> None:
    with pytest.raises(ValueError):
        _chain(StubInvoker()).explain("  \n")


def test_no_backends_is_unavailable() -> None:
    outcome = ProviderChain(StubInvoker()).explain("x = 1")

    assert isinstance(outcome, OrchestrationFailure)
    assert outcome.unavailable
