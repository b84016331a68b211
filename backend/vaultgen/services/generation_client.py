"""Generation provider client and chunk output parsing.

``LiteLLMGenerationClient`` is the production collaborator; tests pass any
object with a matching ``generate`` method. Provider failures surface as
``ChunkCallError`` and unusable output as ``ParseError``; the orchestrator
records both as a failed chunk.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Protocol

from json_repair import repair_json

from ..core.config import Settings
from .circuit_breaker import CircuitBreakerOpen, run_with_timeout
from .partition_plan import ChunkSpec

logger = logging.getLogger(__name__)


class ChunkCallError(Exception):
    """One chunk's generation call failed (network, timeout, provider error)."""


class ParseError(Exception):
    """Model output was not a JSON object usable for its chunk."""


class GenerationClient(Protocol):
    def generate(self, system_prompt: str, prompt: str, *, max_tokens: int, timeout: float) -> str:
        ...


class LiteLLMGenerationClient:
    """Calls the configured model through LiteLLM in JSON mode.

    Args:
        settings: Application settings carrying model, key, base URL
            and temperature.
    """

    def __init__(self, settings: Settings):
        if not settings.generation_model:
            raise ValueError("GENERATION_MODEL is not configured")
        self._model = settings.generation_model
        self._api_key = settings.generation_api_key
        self._api_base = settings.generation_api_base
        self._temperature = settings.generation_temperature

    def generate(self, system_prompt: str, prompt: str, *, max_tokens: int, timeout: float) -> str:
        import litellm

        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": self._temperature,
            "timeout": timeout,
            "response_format": {"type": "json_object"},
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base

        def _call() -> str:
            response = litellm.completion(**kwargs)
            return response.choices[0].message.content or ""

        try:
            # Small grace period over the provider timeout so LiteLLM's own
            # timeout error wins when both fire.
            return run_with_timeout(_call, timeout=timeout + 5, endpoint=self._model)
        except CircuitBreakerOpen as e:
            raise ChunkCallError(str(e)) from e
        except TimeoutError as e:
            raise ChunkCallError(f"Chunk call timed out: {e}") from e
        except Exception as e:
            raise ChunkCallError(f"{type(e).__name__}: {e}") from e


_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text)
        text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def parse_chunk_output(raw: Optional[str], chunk: ChunkSpec) -> Dict[str, Any]:
    """Turn raw model output into the field mapping for *chunk*.

    Strips markdown fences, repairs malformed JSON, unwraps a single wrapper
    key (models sometimes return ``{"smsSequence": {...}}``) and keeps only
    the chunk's declared fields.

    Raises:
        ParseError: Output is empty, not a JSON object, or holds none of
            the chunk's fields.
    """
    if not raw or not raw.strip():
        raise ParseError(f"Empty output for chunk {chunk.index}")

    try:
        parsed = json.loads(repair_json(_strip_fences(raw)))
    except (ValueError, TypeError) as e:
        raise ParseError(f"Unparseable output for chunk {chunk.index}: {e}") from e

    if not isinstance(parsed, dict):
        raise ParseError(f"Chunk {chunk.index} output is {type(parsed).__name__}, expected object")

    wanted = set(chunk.fields)
    if not wanted.intersection(parsed) and len(parsed) == 1:
        inner = next(iter(parsed.values()))
        if isinstance(inner, dict):
            logger.info(f"Unwrapping chunk {chunk.index} output from {next(iter(parsed))!r}")
            parsed = inner

    extra = sorted(k for k in parsed if k not in wanted)
    if extra:
        logger.warning(f"Chunk {chunk.index} returned undeclared fields {extra}; dropping them")

    fields = {k: v for k, v in parsed.items() if k in wanted}
    if not fields:
        raise ParseError(f"Chunk {chunk.index} output contains none of {list(chunk.fields)}")
    return fields
