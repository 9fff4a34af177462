"""Streaming client for a remote Ollama-style text completion service.

The editor formats screenplays by sending a single prompt to
``POST {base_url}/api/generate`` with ``stream`` enabled.  The service answers
with newline-delimited JSON records, each carrying the next ``response``
token (or an ``error`` field when generation failed on the remote side).
:class:`TextGenerator` wraps that exchange:

* Each call makes up to ``max_retries`` attempts.  Network failures and non-2xx
  statuses are retried after an exponential backoff (1s, 2s, 4s ...).
* A remote ``error`` record is fatal and is never retried.
* Lines that cannot be decoded are logged and skipped.  Bytes are buffered
  across reads so a record split over two chunks is reassembled first.
* The cumulative text is reported through ``on_progress`` after every token so
  callers can display partial output.
* A :class:`CancellationToken` aborts the request, including any pending
  backoff wait, and surfaces as :class:`GenerationCancelled`.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import requests

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class GenerationError(RuntimeError):
    """Raised when text generation fails permanently."""


class TransientNetworkError(GenerationError):
    """A single attempt failed in a way that is worth retrying."""


class RemoteSignaledError(GenerationError):
    """The remote service reported an error in the middle of the stream."""


class ExhaustedRetries(GenerationError):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Generation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class MalformedStreamChunk(ValueError):
    """A stream line could not be decoded; it is skipped, never fatal."""


class GenerationCancelled(Exception):
    """The caller cancelled the request.  Not an error and never retried."""


class CancellationToken:
    """Thread-safe cooperative cancellation handle.

    Callbacks registered with :meth:`add_callback` run once when the token is
    cancelled; the generator uses them to close an in-flight response so a
    blocked read returns straight away.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:  # pragma: no cover - closing a dead socket may fail
                LOGGER.debug("Cancellation callback raised", exc_info=True)

    def wait(self, seconds: float) -> bool:
        """Sleep for ``seconds`` unless cancelled first.  Returns ``True`` when cancelled."""

        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled()

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


@dataclass
class StreamState:
    accumulated_text: str = ""
    attempt: int = 0
    cancelled: bool = False


class TextGenerator:
    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        temperature: float = 0.0,
        top_k: int = 30,
        top_p: float = 0.7,
        repeat_penalty: float = 0.8,
        num_ctx: int = 4096,
        num_gpu: int = 1,
        num_thread: int = 8,
        timeout: float = 300.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        chunk_size: int = 1024,
        session: Optional[requests.Session] = None,
    ):
        if max_retries <= 0:
            raise ValueError("max_retries must be a positive integer")
        self.base_url = (base_url or "").rstrip("/")
        self.model = model
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.repeat_penalty = repeat_penalty
        self.num_ctx = num_ctx
        self.num_gpu = num_gpu
        self.num_thread = num_thread
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TextGenerator":
        """Build a generator from Flask-style configuration keys."""

        return cls(
            config.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            config.get("OLLAMA_MODEL", "llama3"),
            timeout=float(config.get("GENERATION_TIMEOUT_SECONDS", 300)),
            max_retries=int(config.get("GENERATION_MAX_RETRIES", 3)),
            backoff_seconds=float(config.get("GENERATION_BACKOFF_SECONDS", 1.0)),
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/generate"

    def _prepare_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": True,
            "num_ctx": self.num_ctx,
            "num_gpu": self.num_gpu,
            "num_thread": self.num_thread,
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "repeat_penalty": self.repeat_penalty,
        }

    def generate_response(
        self,
        prompt: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Stream a completion for ``prompt`` and return the full text.

        Parameters
        ----------
        prompt:
            The complete prompt sent to the model.
        cancel_token:
            Optional handle; cancelling it raises :class:`GenerationCancelled`
            from this call without further retries.
        on_progress:
            Called with the accumulated text after each decoded token.
        """
        token = cancel_token or CancellationToken()
        state = StreamState()
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            if attempt:
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                if token.wait(delay):
                    state.cancelled = True
                    LOGGER.info("Generation request was cancelled before retrying")
                    raise GenerationCancelled()

            state.attempt = attempt
            state.accumulated_text = ""
            try:
                token.raise_if_cancelled()
                return self._attempt(prompt, token, state, on_progress)
            except (GenerationCancelled, RemoteSignaledError):
                raise
            except Exception as exc:
                if token.cancelled:
                    # Closing the response from another thread surfaces as a read error.
                    state.cancelled = True
                    LOGGER.info("Generation request was cancelled during attempt %d", attempt + 1)
                    raise GenerationCancelled() from exc
                if not isinstance(exc, (requests.RequestException, TransientNetworkError)):
                    raise
                LOGGER.warning("Attempt %d failed: %s", attempt + 1, exc)
                last_error = exc

        raise ExhaustedRetries(self.max_retries, last_error) from last_error

    def _attempt(
        self,
        prompt: str,
        token: CancellationToken,
        state: StreamState,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        response = self._open_stream(prompt, token)
        token.add_callback(response.close)
        try:
            if not 200 <= response.status_code < 300:
                raise TransientNetworkError(f"HTTP error! status: {response.status_code}")

            for line in self._iter_stream_lines(response, token):
                try:
                    piece = self._decode_line(line)
                except MalformedStreamChunk as exc:
                    LOGGER.warning("Skipping malformed stream line: %s", exc)
                    continue
                if not piece:
                    continue
                token.raise_if_cancelled()
                state.accumulated_text += piece
                if on_progress is not None:
                    on_progress(state.accumulated_text)

            token.raise_if_cancelled()
            return state.accumulated_text
        finally:
            token.remove_callback(response.close)
            response.close()

    def _open_stream(self, prompt: str, token: CancellationToken) -> Any:
        """Issue the POST on a helper thread so cancellation need not wait for headers.

        A cancelled request is abandoned; its response is closed as soon as it
        arrives.
        """
        outcome: Dict[str, Any] = {}
        finished = threading.Event()

        def _post() -> None:
            try:
                outcome["response"] = self.session.post(
                    self.endpoint,
                    json=self._prepare_payload(prompt),
                    stream=True,
                    timeout=self.timeout,
                )
            except Exception as exc:
                outcome["error"] = exc
            finally:
                finished.set()
                if token.cancelled and "response" in outcome:
                    outcome["response"].close()

        threading.Thread(target=_post, name="generation-request", daemon=True).start()
        token.add_callback(finished.set)
        try:
            finished.wait()
        finally:
            token.remove_callback(finished.set)

        if token.cancelled:
            if "response" in outcome:
                outcome["response"].close()
            raise GenerationCancelled()
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _iter_stream_lines(self, response: Any, token: CancellationToken) -> Iterator[bytes]:
        """Yield complete lines, carrying partial records across chunk reads."""

        buffer = b""
        for chunk in response.iter_content(chunk_size=self.chunk_size):
            token.raise_if_cancelled()
            if not chunk:
                continue
            buffer += chunk
            *complete, buffer = buffer.split(b"\n")
            for line in complete:
                if line.strip():
                    yield line
        if buffer.strip():
            yield buffer

    @staticmethod
    def _decode_line(line: bytes) -> str:
        """Return the token carried by ``line``.

        Raises :class:`RemoteSignaledError` for ``error`` records and
        :class:`MalformedStreamChunk` for anything that is not a JSON object.
        """
        try:
            data = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedStreamChunk(f"{exc}: {line[:80]!r}") from exc
        if not isinstance(data, dict):
            raise MalformedStreamChunk(f"expected a JSON object: {line[:80]!r}")
        if data.get("error"):
            raise RemoteSignaledError(str(data["error"]))
        piece = data.get("response") or ""
        if not isinstance(piece, str):
            raise MalformedStreamChunk(f"'response' is not a string: {line[:80]!r}")
        return piece


__all__ = [
    "CancellationToken",
    "ExhaustedRetries",
    "GenerationCancelled",
    "GenerationError",
    "MalformedStreamChunk",
    "RemoteSignaledError",
    "StreamState",
    "TextGenerator",
    "TransientNetworkError",
]
