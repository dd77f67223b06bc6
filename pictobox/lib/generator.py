"""Image generator client: prompt in, ephemeral image URL out.

The URL returned by :meth:`ImageGeneratorClient.generate` expires. Callers
must pass it through the storage transfer engine before referencing it from
any stored record.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from pictobox.lib.errors import GenerationFailure, ValidationFailure

if TYPE_CHECKING:
    from pictobox.config import GeneratorConfig
    from pictobox.lib.translate import Translator

logger = logging.getLogger(__name__)

_TERMINAL_FAILURES = {"failed", "canceled"}
_PENDING = {"starting", "processing"}


class GenerationBackend(Protocol):
    async def run(self, model: str, params: dict[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# Output normalization
# ---------------------------------------------------------------------------

ExtractionStrategy = Callable[[Any], Awaitable[str | None]]


def _looks_like_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


async def from_plain_string(output: Any) -> str | None:
    return output if _looks_like_url(output) else None


async def from_url_accessor(output: Any) -> str | None:
    """Handle objects exposing ``url()`` (sync or async)."""
    accessor = getattr(output, "url", None)
    if accessor is None or not callable(accessor):
        return None
    value = accessor()
    if inspect.isawaitable(value):
        value = await value
    value = str(value) if value is not None else None
    return value if _looks_like_url(value) else None


async def from_url_field(output: Any) -> str | None:
    """Handle objects or mappings carrying a string ``url`` field."""
    if isinstance(output, Mapping):
        value = output.get("url")
    else:
        value = getattr(output, "url", None)
    return value if _looks_like_url(value) else None


async def from_string_form(output: Any) -> str | None:
    if output is None or isinstance(output, (str, bytes, Mapping)):
        return None
    value = str(output)
    return value if _looks_like_url(value) else None


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    from_plain_string,
    from_url_accessor,
    from_url_field,
    from_string_form,
)


class OutputUrlExtractor:
    """Try each extraction strategy in order until one yields a URL."""

    def __init__(self, strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES) -> None:
        self._strategies = tuple(strategies)

    async def extract(self, output: Any) -> str:
        candidate = output
        if isinstance(output, (list, tuple)):
            if not output:
                raise GenerationFailure("Generation backend returned no outputs")
            candidate = output[0]

        for strategy in self._strategies:
            url = await strategy(candidate)
            if url:
                logger.debug("Extracted output URL with %s", strategy.__name__)
                return url

        raise GenerationFailure(
            "Could not extract an image URL from generation output",
            output_type=type(candidate).__name__,
        )


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class ReplicateBackend:
    """Run models through the Replicate HTTP predictions API."""

    def __init__(
        self,
        api_token: str,
        api_base: str = "https://api.replicate.com/v1",
        timeout: float = 60.0,
        poll_interval: float = 1.0,
        max_polls: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_token = api_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Prefer": f"wait={int(min(self._timeout, 60))}",
        }

    async def run(self, model: str, params: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self._api_base}/models/{model}/predictions",
                json={"input": params},
                headers=self._headers(),
            )
            prediction = _prediction_json(response)

            polls = 0
            while prediction.get("status") in _PENDING:
                if polls >= self._max_polls:
                    raise GenerationFailure(
                        "Prediction did not finish in time", prediction_id=prediction.get("id")
                    )
                get_url = (prediction.get("urls") or {}).get("get")
                if not get_url:
                    raise GenerationFailure("Pending prediction has no polling URL")
                await asyncio.sleep(self._poll_interval)
                polls += 1
                prediction = _prediction_json(await client.get(get_url, headers=self._headers()))

        status = prediction.get("status")
        if status in _TERMINAL_FAILURES:
            raise GenerationFailure(
                f"Prediction {status}: {prediction.get('error')}",
                prediction_id=prediction.get("id"),
            )
        return prediction.get("output")


def _prediction_json(response: httpx.Response) -> dict[str, Any]:
    if not response.is_success:
        raise GenerationFailure(
            f"Generation backend error: {response.status_code}",
            status_code=response.status_code,
            body=response.text[:500],
        )
    return response.json()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ImageGeneratorClient:
    """Translate, style and submit a prompt, returning the ephemeral image URL."""

    def __init__(
        self,
        config: GeneratorConfig,
        backend: GenerationBackend,
        translator: Translator,
        extractor: OutputUrlExtractor | None = None,
    ) -> None:
        self._config = config
        self._backend = backend
        self._translator = translator
        self._extractor = extractor or OutputUrlExtractor()

    @classmethod
    def from_config(cls, config: GeneratorConfig, translator: Translator) -> ImageGeneratorClient:
        backend = ReplicateBackend(
            config.api_token,
            api_base=config.api_base,
            timeout=config.timeout,
            poll_interval=config.poll_interval,
            max_polls=config.max_polls,
        )
        return cls(config, backend, translator)

    def validate_prompt(self, prompt: str | None) -> str:
        """Return the stripped prompt or raise :class:`ValidationFailure`."""
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationFailure("Prompt is required")
        prompt = prompt.strip()
        if len(prompt) > self._config.max_prompt_length:
            raise ValidationFailure(
                f"Prompt must be at most {self._config.max_prompt_length} characters",
                length=len(prompt),
            )
        return prompt

    def style_prompt(self, prompt: str) -> str:
        return self._config.style_template.format(prompt=prompt)

    async def generate(self, prompt: str) -> str:
        prompt = self.validate_prompt(prompt)

        translated = await self._translator.to_english(prompt)
        if translated.degraded:
            logger.warning("Generating with untranslated prompt: %s", translated.warning)

        styled = self.style_prompt(translated.value)
        params = {
            "prompt": styled,
            "num_outputs": 1,
            "aspect_ratio": self._config.aspect_ratio,
            "output_format": self._config.output_format,
        }
        logger.info("Generating image with model %s", self._config.model)

        try:
            output = await self._backend.run(self._config.model, params)
        except GenerationFailure:
            raise
        except httpx.HTTPError as exc:
            raise GenerationFailure(f"Generation request failed: {exc}") from exc

        return await self._extractor.extract(output)
