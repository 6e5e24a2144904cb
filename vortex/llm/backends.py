"""Concrete AI backends behind a single capability.

Every backend is a plain function `(prompt, descriptor, timeout_s) -> str`
registered in BACKENDS under its BackendKind. BackendInvoker dispatches on
`descriptor.kind`, so adding a provider means writing one function and adding
one table entry.

Each backend handles provider-specific concerns:
- Client creation with a bounded per-call timeout (no SDK-level retries;
  the chain itself is the retry policy)
- Model defaults when the descriptor does not name one
- Response text extraction
- Raising BackendError for failures it can classify locally (empty body,
  missing choices, connection errors)

Anything else the SDK raises is classified by vortex.errors.
"""

import logging
import time
from typing import Callable, Optional

import httpx

from vortex.errors import BackendError, ErrorKind
from vortex.llm.schemas import BackendDescriptor, BackendKind, TaskMode

logger = logging.getLogger(__name__)

BackendFn = Callable[[str, BackendDescriptor, float], str]

MAX_OUTPUT_TOKENS = 8_000
CONNECT_TIMEOUT_S = 10.0

DEFAULT_MODELS: dict[BackendKind, str] = {
    BackendKind.GEMINI: "gemini-2.0-flash",
    BackendKind.MISTRAL: "codestral-latest",
    BackendKind.ANTHROPIC: "claude-sonnet-4-5-20250929",
    BackendKind.DEEPSEEK: "deepseek-chat",
    BackendKind.GROQ: "llama-3.3-70b-versatile",
    BackendKind.OPENAI: "gpt-4o-mini",
    BackendKind.OPENROUTER: "openai/gpt-4o-mini",
}

# OpenAI-compatible chat completion endpoints
OPENAI_COMPATIBLE_BASE_URLS: dict[BackendKind, str] = {
    BackendKind.MISTRAL: "https://api.mistral.ai/v1",
    BackendKind.DEEPSEEK: "https://api.deepseek.com/v1",
    BackendKind.GROQ: "https://api.groq.com/openai/v1",
    BackendKind.OPENAI: "https://api.openai.com/v1",
    BackendKind.OPENROUTER: "https://openrouter.ai/api/v1",
}


def resolve_model(descriptor: BackendDescriptor) -> str:
    return descriptor.model or DEFAULT_MODELS[descriptor.kind]


def _require_text(text: str, descriptor: BackendDescriptor, model: str) -> str:
    if not text or not text.strip():
        raise BackendError(
            ErrorKind.INVALID_RESPONSE,
            f"Empty response from {descriptor.kind.value}/{model}",
        )
    return text.strip()


def call_anthropic(prompt: str, descriptor: BackendDescriptor, timeout_s: float) -> str:
    """Anthropic Messages API via the official SDK."""
    import anthropic

    model = resolve_model(descriptor)
    client = anthropic.Anthropic(
        api_key=descriptor.credential,
        base_url=descriptor.endpoint_override or None,
        timeout=httpx.Timeout(timeout_s, connect=min(CONNECT_TIMEOUT_S, timeout_s)),
        max_retries=0,
    )
    try:
        response = client.messages.create(
            model=model,
            max_tokens=MAX_OUTPUT_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.APIConnectionError as e:
        # Covers APITimeoutError too
        raise BackendError(ErrorKind.NETWORK, f"anthropic: {e}") from e

    raw_text = ""
    for block in response.content:
        if getattr(block, "type", "") == "text":
            raw_text += block.text
    return _require_text(raw_text, descriptor, model)


def call_gemini(prompt: str, descriptor: BackendDescriptor, timeout_s: float) -> str:
    """Google Gemini via google-genai."""
    from google import genai
    from google.genai import types

    model = resolve_model(descriptor)
    http_options = types.HttpOptions(
        timeout=int(timeout_s * 1000),  # milliseconds
        base_url=descriptor.endpoint_override or None,
    )
    client = genai.Client(api_key=descriptor.credential, http_options=http_options)
    response = client.models.generate_content(model=model, contents=prompt)
    return _require_text(response.text or "", descriptor, model)


def call_openai_compatible(prompt: str, descriptor: BackendDescriptor, timeout_s: float) -> str:
    """Chat-completions call for Mistral, DeepSeek, Groq, OpenAI and OpenRouter."""
    model = resolve_model(descriptor)
    base_url = (
        descriptor.endpoint_override
        or OPENAI_COMPATIBLE_BASE_URLS[descriptor.kind]
    ).rstrip("/")

    response = httpx.post(
        f"{base_url}/chat/completions",
        headers={
            "Authorization": f"Bearer {descriptor.credential}",
            "Content-Type": "application/json",
        },
        json={
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": MAX_OUTPUT_TOKENS,
        },
        timeout=httpx.Timeout(timeout_s, connect=min(CONNECT_TIMEOUT_S, timeout_s)),
    )
    response.raise_for_status()

    try:
        data = response.json()
        content = data["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise BackendError(
            ErrorKind.INVALID_RESPONSE,
            f"Malformed chat completion from {descriptor.kind.value}: {e}",
        ) from e

    # Some providers return content as a list of parts
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return _require_text(content or "", descriptor, model)


BACKENDS: dict[BackendKind, BackendFn] = {
    BackendKind.GEMINI: call_gemini,
    BackendKind.ANTHROPIC: call_anthropic,
    BackendKind.MISTRAL: call_openai_compatible,
    BackendKind.DEEPSEEK: call_openai_compatible,
    BackendKind.GROQ: call_openai_compatible,
    BackendKind.OPENAI: call_openai_compatible,
    BackendKind.OPENROUTER: call_openai_compatible,
}


class BackendInvoker:
    """The `invoke(prompt, mode, descriptor) -> text` capability.

    Dispatches to the BACKENDS table with a fixed per-call timeout. `mode` is
    accepted for interface symmetry; the preamble has already been applied.
    """

    def __init__(
        self,
        timeout_s: float = 60.0,
        backends: Optional[dict[BackendKind, BackendFn]] = None,
    ):
        self.timeout_s = timeout_s
        self.backends = backends if backends is not None else BACKENDS

    def __call__(self, prompt: str, mode: TaskMode, descriptor: BackendDescriptor) -> str:
        backend = self.backends.get(descriptor.kind)
        if backend is None:
            raise BackendError(
                ErrorKind.UNKNOWN,
                f"No backend implementation for '{descriptor.kind.value}'",
            )

        start_time = time.time()
        text = backend(prompt, descriptor, self.timeout_s)
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[{descriptor.kind.value}] {mode.value} completed: "
            f"{len(text):,} chars, {duration_ms}ms"
        )
        return text
