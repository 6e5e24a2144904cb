"""Shared test fixtures."""

from typing import Callable, Optional, Union

import pytest

from vortex.errors import StoreConnectionError
from vortex.llm.schemas import BackendDescriptor, BackendKind, TaskMode
from vortex.store.memory import MemoryStorage

# A scripted reply: text to return, or an exception to raise
Reply = Union[str, BaseException]


class StubInvoker:
    """invoke(prompt, mode, descriptor) stub that records every call.

    Replies are looked up by descriptor kind; a list of replies is consumed
    one per call.
    """

    def __init__(self, replies: Optional[dict[BackendKind, Union[Reply, list[Reply]]]] = None):
        self.replies = dict(replies or {})
        self.calls: list[tuple[str, TaskMode, BackendDescriptor]] = []

    def __call__(self, prompt: str, mode: TaskMode, descriptor: BackendDescriptor) -> str:
        self.calls.append((prompt, mode, descriptor))
        reply = self.replies.get(descriptor.kind, "")
        if isinstance(reply, list):
            reply = reply.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    @property
    def kinds_called(self) -> list[BackendKind]:
        return [call[2].kind for call in self.calls]

    @property
    def prompts(self) -> list[str]:
        return [call[0] for call in self.calls]


class CountingDurable:
    """Durable-store stub: a MemoryStorage that counts calls and can fail on demand.

    Args:
        ping_error: Raised by ping() when set
        fail_calls: Raise StoreConnectionError on every non-ping call
    """

    def __init__(self, ping_error: Optional[BaseException] = None, fail_calls: bool = False):
        self.inner = MemoryStorage()
        self.ping_error = ping_error
        self.fail_calls = fail_calls
        self.ping_count = 0
        self.calls: list[str] = []
        self.ping_hook: Optional[Callable[[], None]] = None

    def ping(self) -> None:
        self.ping_count += 1
        if self.ping_hook is not None:
            self.ping_hook()
        if self.ping_error is not None:
            raise self.ping_error

    def __getattr__(self, name: str):
        target = getattr(self.inner, name)

        def wrapper(*args, **kwargs):
            self.calls.append(name)
            if self.fail_calls:
                raise StoreConnectionError("connection refused")
            return target(*args, **kwargs)

        return wrapper


def descriptor(kind: BackendKind, credential: str = "key", **kwargs) -> BackendDescriptor:
    return BackendDescriptor(kind=kind, credential=credential, **kwargs)


@pytest.fixture()
def healthy_durable() -> CountingDurable:
    return CountingDurable()


@pytest.fixture()
def unreachable_durable() -> CountingDurable:
    return CountingDurable(ping_error=StoreConnectionError("PostgreSQL unreachable: connection refused"))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep real API keys and DATABASE_URL out of tests."""
    for name in (
        "DATABASE_URL",
        "GEMINI_API_KEY",
        "MISTRAL_API_KEY",
        "ANTHROPIC_API_KEY",
        "DEEPSEEK_API_KEY",
        "GROQ_API_KEY",
        "OPENAI_API_KEY",
        "OPENROUTER_API_KEY",
        "VORTEX_PLATFORM_CHAIN",
        "VORTEX_BACKEND_TIMEOUT_S",
        "VORTEX_DB_POOL_MAX",
        "VORTEX_DB_CONNECT_TIMEOUT_S",
    ):
        monkeypatch.delenv(name, raising=False)
