"""Best-effort prompt translation to English."""

from __future__ import annotations

import logging
import unicodedata
from typing import TYPE_CHECKING, Protocol

import httpx

from pictobox.lib.results import BestEffort

if TYPE_CHECKING:
    from pictobox.config import TranslatorConfig

logger = logging.getLogger(__name__)


class TranslationBackend(Protocol):
    async def translate(self, text: str, source: str, target: str) -> str: ...


def has_non_latin_text(text: str) -> bool:
    """True when any letter in ``text`` is outside the Latin script (e.g. Hangul)."""
    for ch in text:
        if ch.isalpha() and not unicodedata.name(ch, "").startswith("LATIN"):
            return True
    return False


class GoogleTranslateBackend:
    """Client for the public Google Translate ``translate_a/single`` endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._transport = transport

    async def translate(self, text: str, source: str, target: str) -> str:
        params = {"client": "gtx", "sl": source, "tl": target, "dt": "t", "q": text}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._endpoint, params=params)
            response.raise_for_status()
            payload = response.json()

        # [[["translated", "original", ...], ...], ...]
        segments = payload[0] if isinstance(payload, list) and payload else None
        if not segments:
            raise ValueError("Translation response carried no segments")
        return "".join(segment[0] for segment in segments if segment and segment[0])


class Translator:
    """Translate non-Latin prompts, falling back to the original text on any failure."""

    def __init__(self, backend: TranslationBackend, config: TranslatorConfig) -> None:
        self._backend = backend
        self._config = config

    @classmethod
    def from_config(cls, config: TranslatorConfig) -> Translator:
        return cls(GoogleTranslateBackend(config.endpoint, timeout=config.timeout), config)

    async def to_english(self, text: str) -> BestEffort[str]:
        if not self._config.enabled or not has_non_latin_text(text):
            return BestEffort(text)

        try:
            translated = await self._backend.translate(
                text, self._config.source_language, self._config.target_language
            )
        except Exception as exc:
            logger.warning("Translation failed, using original prompt", exc_info=True)
            return BestEffort(text, warning=f"Translation failed: {exc}")

        translated = translated.strip()
        if not translated:
            return BestEffort(text, warning="Translation returned empty text")
        return BestEffort(translated)
