"""
llm_client.py
-------------
Optional live language-model capability.

The advisor never checks the environment for an API key itself; it is handed
a ``LanguageModelClient`` and calls ``try_complete``.  A ``None`` result means
"no answer" (disabled, network failure, timeout, bad payload) and the caller
falls back to the rule engines.  Nothing in this module raises.
"""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_MODEL    = "gpt-3.5-turbo"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT  = 20

# Placeholder key the frontend ships with; treated as "no key"
_PLACEHOLDER_KEYS = {"", "demo-key"}


class LanguageModelClient:
    """Interface: ``try_complete`` returns completion text or ``None``."""

    name = "base"

    @property
    def available(self) -> bool:
        return False

    def try_complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        history:       Optional[list] = None,
        max_tokens:    int            = 500,
    ) -> Optional[str]:
        return None


class DisabledClient(LanguageModelClient):
    """Always declines, so every request is answered by the rule engines."""

    name = "fallback"


class OpenAIChatClient(LanguageModelClient):
    """
    Client for an OpenAI-compatible ``/chat/completions`` endpoint.

    Parameters
    ----------
    api_key     : str   – bearer token
    model       : str   – model name sent with every request
    base_url    : str   – API root, without the trailing ``/chat/completions``
    timeout     : float – per-request timeout in seconds
    temperature : float
    session     : requests.Session, optional – injected for tests
    """

    def __init__(
        self,
        api_key:     str,
        model:       str                        = DEFAULT_MODEL,
        base_url:    str                        = DEFAULT_BASE_URL,
        timeout:     float                      = DEFAULT_TIMEOUT,
        temperature: float                      = 0.7,
        session:     Optional[requests.Session] = None,
    ):
        self.api_key     = api_key
        self.model       = model
        self.url         = base_url.rstrip("/") + "/chat/completions"
        self.timeout     = timeout
        self.temperature = temperature
        self.session     = session or requests.Session()
        self.name        = model

    @property
    def available(self) -> bool:
        return True

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type":  "application/json",
        }

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str, history: Optional[list]) -> list:
        messages = [{"role": "system", "content": system_prompt}]
        for entry in history or []:
            role    = entry.get("role") if isinstance(entry, dict) else None
            content = entry.get("content") if isinstance(entry, dict) else None
            if role in ("user", "assistant") and isinstance(content, str) and content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    def try_complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        history:       Optional[list] = None,
        max_tokens:    int            = 500,
    ) -> Optional[str]:
        payload = {
            "model":       self.model,
            "messages":    self._messages(system_prompt, user_prompt, history),
            "temperature": self.temperature,
            "max_tokens":  max_tokens,
        }
        try:
            response = self.session.post(
                self.url, json=payload, headers=self._headers(), timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Language model request failed: %s", exc)
            return None

        if response.status_code != 200:
            logger.warning("Language model API %s → %s", self.url, response.status_code)
            return None

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Unexpected language model payload: %s", exc)
            return None

        if not isinstance(content, str) or not content.strip():
            logger.warning("Language model returned an empty completion")
            return None
        return content.strip()


def build_client(
    api_key:  Optional[str],
    model:    str   = DEFAULT_MODEL,
    base_url: str   = DEFAULT_BASE_URL,
    timeout:  float = DEFAULT_TIMEOUT,
) -> LanguageModelClient:
    """
    Pick the live client when a real key is configured, else the disabled one.
    """
    key = (api_key or "").strip()
    if key in _PLACEHOLDER_KEYS:
        logger.warning("OPENAI_API_KEY not set – answering with the rule-based advisor only")
        return DisabledClient()
    logger.info("Live language model enabled (%s)", model)
    return OpenAIChatClient(key, model=model, base_url=base_url, timeout=timeout)
