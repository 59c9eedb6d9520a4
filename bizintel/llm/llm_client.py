"""
LLM client using LiteLLM for multi-provider structured completion.

The pipeline only depends on the `CompletionOracle` protocol
(`complete(prompt, schema_hint) -> str`). `LLMClient` is the shipped
implementation; build one per process and inject it into the extractor.

Usage:
    from bizintel.llm.llm_client import LLMClient

    client = LLMClient(model="gpt-4o-mini")
    text = client.complete("Extract ...", schema_hint='{"businessName": null}')
"""

import hashlib
import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import litellm
from litellm import completion, completion_cost

# Suppress verbose LiteLLM logging
litellm.suppress_debug_info = True
logging.getLogger("LiteLLM").setLevel(logging.WARNING)


# =============================================================================
# MODEL CONSTANTS
# =============================================================================

MODEL_GPT4O_MINI = "gpt-4o-mini"
MODEL_GPT4O = "gpt-4o"
MODEL_CLAUDE_HAIKU_45 = "claude-haiku-4-5"
MODEL_GEMINI_25_FLASH = "gemini-2.5-flash"

MODEL_REGISTRY: Dict[str, Dict[str, Any]] = {
    MODEL_GPT4O_MINI: {
        "litellm_name": "gpt-4o-mini",
        "provider": "openai",
        "supports_json_mode": True,
    },
    MODEL_GPT4O: {
        "litellm_name": "gpt-4o",
        "provider": "openai",
        "supports_json_mode": True,
    },
    MODEL_CLAUDE_HAIKU_45: {
        "litellm_name": "anthropic/claude-haiku-4-5",
        "provider": "anthropic",
        "supports_json_mode": False,
    },
    MODEL_GEMINI_25_FLASH: {
        "litellm_name": "gemini/gemini-2.5-flash",
        "provider": "google",
        "supports_json_mode": True,
    },
}

DEFAULT_FALLBACKS: Dict[str, List[str]] = {
    MODEL_GPT4O_MINI: [MODEL_GEMINI_25_FLASH],
    MODEL_GPT4O: [MODEL_GPT4O_MINI],
    MODEL_GEMINI_25_FLASH: [MODEL_GPT4O_MINI],
    MODEL_CLAUDE_HAIKU_45: [MODEL_GPT4O_MINI],
}

SYSTEM_PROMPT = (
    "You extract structured business information from website text. "
    "Reply with a single JSON object and nothing else."
)


@runtime_checkable
class CompletionOracle(Protocol):
    """Prompt in, JSON text out. May raise or time out."""

    def complete(self, prompt: str, schema_hint: str) -> str:
        ...


@dataclass
class LLMResponse:
    """Response from one completion call with cost tracking."""

    text: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    finish_reason: Optional[str] = None
    prompt_hash: str = ""
    timestamp: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """
    LiteLLM-backed CompletionOracle with model fallback on transient errors.

    Args:
        model: Primary model key from MODEL_REGISTRY, or any LiteLLM model string
        fallback_models: Models tried after a transient failure
        temperature: Sampling temperature
        max_tokens: Output token cap
        request_timeout: Per-call HTTP timeout (seconds)
        logger: PipelineLogger instance
    """

    def __init__(
        self,
        model: str = MODEL_GPT4O_MINI,
        fallback_models: Optional[List[str]] = None,
        temperature: float = 0.1,
        max_tokens: int = 3000,
        request_timeout: float = 60.0,
        logger=None,
    ):
        self.model_name = model
        self.fallback_models = fallback_models if fallback_models is not None else DEFAULT_FALLBACKS.get(model, [])
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.logger = logger
        self._cost_lock = threading.Lock()
        self.total_cost_usd = 0.0

    def _is_transient_error(self, error: Exception) -> bool:
        """Check if an error is transient and worth retrying with fallback."""
        error_str = str(error).lower()
        transient_indicators = [
            "rate limit",
            "too many requests",
            "429",
            "502",
            "503",
            "timeout",
            "connection",
            "temporarily",
            "overloaded",
        ]
        return any(indicator in error_str for indicator in transient_indicators)

    def _is_permanent_error(self, error: Exception) -> bool:
        """Authentication and malformed-request errors never trigger fallback."""
        error_str = str(error).lower()
        error_type = type(error).__name__.lower()
        permanent_indicators = [
            "authentication",
            "api key",
            "unauthorized",
            "401",
            "permission denied",
            "invalid request",
            "authenticationerror",
            "badrequesterror",
        ]
        return any(indicator in error_str or indicator in error_type for indicator in permanent_indicators)

    def complete(self, prompt: str, schema_hint: str) -> str:
        """CompletionOracle entry point: return the raw JSON text."""
        return self.generate(prompt, schema_hint=schema_hint).text

    def generate(self, prompt: str, schema_hint: Optional[str] = None) -> LLMResponse:
        """
        Run one completion, falling back to the next model on transient errors.

        Safe to call from several threads: per-call details live only in the
        returned LLMResponse; the running cost total is updated under a lock.

        Raises:
            Exception: the provider error when every model failed or the error is permanent
        """
        models_to_try = [self.model_name] + [m for m in self.fallback_models if m != self.model_name]
        prompt_hash = hashlib.sha256(prompt.encode()).hexdigest()[:16]
        last_error: Optional[Exception] = None

        for model_name in models_to_try:
            try:
                response = self._generate_with_model(model_name, prompt, schema_hint, prompt_hash)
                with self._cost_lock:
                    self.total_cost_usd += response.cost_usd
                return response
            except Exception as e:
                last_error = e
                if self._is_permanent_error(e) or model_name == models_to_try[-1]:
                    if self.logger:
                        self.logger.error(f"LLM call failed with {model_name}", exception=e)
                    raise
                if self.logger:
                    kind = "TRANSIENT" if self._is_transient_error(e) else "UNEXPECTED"
                    self.logger.warning(f"{kind} error with {model_name}: {type(e).__name__}: {e}. Trying fallback")

        raise RuntimeError(f"All models failed. Last error: {last_error}")

    def _generate_with_model(
        self,
        model_name: str,
        prompt: str,
        schema_hint: Optional[str],
        prompt_hash: str,
    ) -> LLMResponse:
        model_config = MODEL_REGISTRY.get(
            model_name,
            {"litellm_name": model_name, "provider": "unknown", "supports_json_mode": False},
        )

        system_prompt = SYSTEM_PROMPT
        if schema_hint:
            system_prompt += f"\nThe object must have this shape: {schema_hint}"

        kwargs: Dict[str, Any] = {
            "model": model_config["litellm_name"],
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.request_timeout,
        }
        if model_config.get("supports_json_mode"):
            kwargs["response_format"] = {"type": "json_object"}

        litellm.drop_params = True
        response = completion(**kwargs)

        if not response.choices:
            raise RuntimeError(f"LLM API returned empty choices array. Model: {model_name}")

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0 if usage else 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0 if usage else 0

        try:
            cost = completion_cost(completion_response=response)
        except Exception:
            # Unknown pricing for custom model strings
            cost = 0.0

        return LLMResponse(
            text=text,
            model=model_name,
            provider=model_config["provider"],
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost or 0.0,
            finish_reason=getattr(response.choices[0], "finish_reason", None),
            prompt_hash=prompt_hash,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
