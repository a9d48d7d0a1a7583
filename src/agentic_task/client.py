# client.py
# Remote chat client: one request/response exchange per engine iteration.
#
# The OpenAI SDK is the transport, with its own retries disabled: this
# module owns the retry policy.
#   429, 503, 504, timeout  → transient, retried with exponential backoff
#   401, 403                → AuthError, never retried
#   anything else           → ApiError, never retried

import logging
import time
from collections.abc import Callable, Sequence

import httpx
import openai
from openai import OpenAI

from agentic_task.config import Settings
from agentic_task.models import Message, Role

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({429, 503, 504})
AUTH_STATUSES = frozenset({401, 403})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ApiError(Exception):
    """Non-retryable (or retry-exhausted) failure talking to the assistant."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"HTTP {status}: {message}" if status else message)
        self.status = status
        self.message = message


class AuthError(Exception):
    """Authentication or authorization rejected by the remote API."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"HTTP {status}: {message}" if status else message)
        self.status = status
        self.message = message


class _TransientFailure(Exception):
    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_chat_messages(transcript: Sequence[Message], system_prompt: str) -> list[dict]:
    """Map a transcript onto chat-completion messages; tool results travel as user turns."""
    messages = [{"role": "system", "content": system_prompt}]
    for message in transcript:
        role = "assistant" if message.role is Role.ASSISTANT else "user"
        messages.append({"role": role, "content": message.text})
    return messages


def _error_message(exc: openai.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict):
            detail = detail.get("message") or detail
        if detail:
            return str(detail)
    return exc.message or f"HTTP {exc.status_code}"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChatClient:
    """
    Sends the running transcript to a chat-completion endpoint.

    Example:
        client = ChatClient(api_key="sk-...", model="anthropic/claude-3.5-haiku")
        reply = client.send(transcript, system_prompt)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 120.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        openai_client: OpenAI | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._model = model
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = openai_client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            max_retries=0,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatClient":
        settings.require_credentials()
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
        )

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def send(self, transcript: Sequence[Message], system_prompt: str) -> str:
        """
        Return the assistant's reply text for `transcript`.

        Raises AuthError on 401/403 and ApiError on any other failure,
        including transient failures that outlast max_attempts.
        """
        messages = to_chat_messages(transcript, system_prompt)
        attempt = 1

        while True:
            try:
                return self._request(messages)
            except _TransientFailure as exc:
                if attempt >= self._max_attempts:
                    logger.error("Giving up after %d attempts: %s", attempt, exc.message)
                    raise ApiError(exc.status, f"gave up after {attempt} attempts: {exc.message}") from exc
                delay = self._backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Transient API failure (attempt %d/%d): %s. Retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    exc.message,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    def _request(self, messages: list[dict]) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                timeout=self._timeout,
            )
        except openai.APITimeoutError as exc:
            raise _TransientFailure(None, f"request timed out after {self._timeout}s") from exc
        except openai.APIStatusError as exc:
            status = exc.status_code
            message = _error_message(exc)
            if status in AUTH_STATUSES:
                raise AuthError(status, message) from exc
            if status in TRANSIENT_STATUSES:
                raise _TransientFailure(status, message) from exc
            raise ApiError(status, message) from exc
        except openai.APIConnectionError as exc:
            raise ApiError(None, f"connection failed: {exc}") from exc
        except openai.APIError as exc:
            raise ApiError(None, f"unexpected API failure: {exc}") from exc

        if not response.choices:
            raise ApiError(None, "response contained no choices")
        content = response.choices[0].message.content or ""
        if not content.strip():
            logger.warning("API returned an empty reply")
        return content.strip()
