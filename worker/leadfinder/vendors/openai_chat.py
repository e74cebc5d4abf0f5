"""Minimal OpenAI-compatible chat completions client over REST."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
MAX_RETRIES = 2


class ChatCompletionError(RuntimeError):
    """Raised on transport errors, non-2xx replies or unusable content."""


class ChatCompletionClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-3.5-turbo",
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ValueError("An API key is required for chat completions")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            session = requests.Session()
            retries = Retry(
                total=MAX_RETRIES,
                backoff_factor=1,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("POST",),
            )
            session.mount("https://", HTTPAdapter(max_retries=retries))
            session.mount("http://", HTTPAdapter(max_retries=retries))
            self._session = session
        return self._session

    def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float = 0.1,
        max_tokens: int = 300,
        response_format: Optional[Dict[str, str]] = None,
    ) -> str:
        """Return the assistant message content of the first choice."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        try:
            response = self._get_session().post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ChatCompletionError(f"Chat completion request failed: {exc}") from exc

        if not (200 <= response.status_code < 300):
            logger.error("Chat completion returned %s: %s", response.status_code, response.text[:500])
            raise ChatCompletionError(f"Chat completion API error: {response.status_code}")

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ChatCompletionError(f"Invalid chat completion response structure: {exc}") from exc

        if not content:
            raise ChatCompletionError("No content in chat completion response")
        logger.debug("Chat completion usage: %s", data.get("usage"))
        return content

    def complete_json(self, messages: List[Dict[str, str]], **kwargs: Any) -> Dict[str, Any]:
        content = self.complete(messages, response_format={"type": "json_object"}, **kwargs)
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse JSON response: %s", content[:500])
            raise ChatCompletionError(f"Invalid JSON in response: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ChatCompletionError("Expected a JSON object in the response")
        return parsed

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
