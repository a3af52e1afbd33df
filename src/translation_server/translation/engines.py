"""
=============================================================================
TRANSLATION CAPABILITIES
=============================================================================

The translation model itself is an external collaborator. This module
defines the narrow interface the server needs from it and a few
implementations:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  TranslationCapability (ABC)                                        │
    │      translate(text, source, target) -> str   raises on failure     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  EchoCapability             returns the text unchanged              │
    │  FunctionCapability         wraps any callable                      │
    │  LibreTranslateCapability   HTTP call to a LibreTranslate instance  │
    └─────────────────────────────────────────────────────────────────────┘

A capability is synchronous and may block; EngineRunner calls it on its
own thread and turns the result into a TranslationOutcome.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from ..config import ServerConfig


logger = logging.getLogger(__name__)


class TranslationError(Exception):
    """Raised by a capability when a translation cannot be produced."""


@dataclass(frozen=True)
class TranslationOutcome:
    """
    The single result reported for one job: translated text or an error.

    Exactly one of ``text`` and ``error`` is set.
    """

    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> "TranslationOutcome":
        return cls(text=text)

    @classmethod
    def failure(cls, message: str) -> "TranslationOutcome":
        return cls(error=message)


class TranslationCapability(ABC):
    """
    Base class for translation engines.

    Subclasses implement translate(). The name is used in log lines.
    """

    name = "capability"

    @abstractmethod
    def translate(self, text: str, source_language: str, target_language: str) -> str:
        """
        Translate text.

        Args:
            text: Text to translate; may contain newlines.
            source_language: Source language code ("en").
            target_language: Target language code ("zh-Hans").

        Returns:
            The translated text.

        Raises:
            TranslationError: When the translation fails.
        """

    def close(self):
        """Release resources held by the engine. Default: nothing."""


class EchoCapability(TranslationCapability):
    """Returns its input. Useful for smoke-testing the HTTP side."""

    name = "echo"

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        return text


class FunctionCapability(TranslationCapability):
    """
    Adapts a plain callable ``func(text, source, target) -> str``.

    Any exception the callable raises becomes a translation failure.
    """

    name = "function"

    def __init__(self, func: Callable[[str, str, str], str]):
        self.func = func

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        return self.func(text, source_language, target_language)


class LibreTranslateCapability(TranslationCapability):
    """
    Translates through a LibreTranslate-compatible HTTP API.

        POST {base_url}/translate
        {"q": text, "source": "en", "target": "zh", "format": "text"}
        → {"translatedText": "..."}
    """

    name = "libretranslate"

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:5000",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/translate"

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        payload = {
            "q": text,
            "source": source_language,
            "target": target_language,
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            resp = self._session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise TranslationError(f"engine unreachable: {e}") from e

        if resp.status_code != 200:
            raise TranslationError(self._provider_error(resp))

        try:
            out = resp.json()
        except ValueError as e:
            raise TranslationError("engine returned invalid JSON") from e

        translated = out.get("translatedText") if isinstance(out, dict) else None
        if not isinstance(translated, str):
            raise TranslationError("engine reply has no translatedText")
        return translated

    @staticmethod
    def _provider_error(resp: requests.Response) -> str:
        """Prefer the engine's own {"error": ...} message over the status."""
        try:
            detail = resp.json().get("error")
        except (ValueError, AttributeError):
            detail = None
        if detail:
            return f"engine error {resp.status_code}: {detail}"
        return f"engine error {resp.status_code}"

    def close(self):
        self._session.close()


def create_capability(config: ServerConfig) -> TranslationCapability:
    """Build the capability selected by ``config.engine``."""
    if config.engine == "echo":
        return EchoCapability()
    if config.engine == "libretranslate":
        logger.info(f"Using LibreTranslate at {config.libretranslate_url}")
        return LibreTranslateCapability(
            base_url=config.libretranslate_url,
            api_key=config.libretranslate_api_key,
            timeout=config.engine_timeout,
        )
    raise ValueError(f"Unknown engine: {config.engine!r}")
