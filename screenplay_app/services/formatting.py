from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional

from flask import current_app

from system_prompts import build_format_prompt
from text_generator import CancellationToken, GenerationCancelled, GenerationError

LOGGER = logging.getLogger(__name__)

ORCHESTRATOR_KEY = "_FORMATTING_ORCHESTRATOR"
GENERATOR_KEY = "_TEXT_GENERATOR_INSTANCE"
REROLL_EMPTY_MESSAGE = "Please enter a script to re-roll."

_session_ids = itertools.count(1)
_ORCHESTRATOR_LOCK = threading.Lock()


class FormattingState(str, Enum):
    IDLE = "idle"
    FORMATTING = "formatting"


@dataclass
class FormattingSession:
    token: CancellationToken = field(default_factory=CancellationToken)
    id: int = field(default_factory=lambda: next(_session_ids))
    thread: Optional[threading.Thread] = None


@dataclass(frozen=True)
class FormattingSnapshot:
    input_text: str
    output_text: str
    is_formatting: bool


class FormattingOrchestrator:
    """Drive one screenplay formatting request at a time.

    The orchestrator owns the raw input, the raw (unclassified) output and the
    cancellation handle of the active session.  Generation runs on a worker
    thread; the web layer polls :meth:`snapshot` and classifies the output on
    demand.  Only the active session may write to the output, so a cancelled
    request can never overwrite the result of the one that replaced it.
    """

    def __init__(
        self,
        generator: Any,
        *,
        prompt_builder: Callable[[str], str] = build_format_prompt,
    ) -> None:
        self._generator = generator
        self._prompt_builder = prompt_builder
        self._lock = threading.Lock()
        self._state = FormattingState.IDLE
        self._session: Optional[FormattingSession] = None
        self._input_text = ""
        self._output_text = ""

    @property
    def state(self) -> FormattingState:
        return self._state

    @property
    def is_formatting(self) -> bool:
        return self._state is FormattingState.FORMATTING

    def snapshot(self) -> FormattingSnapshot:
        with self._lock:
            return FormattingSnapshot(
                input_text=self._input_text,
                output_text=self._output_text,
                is_formatting=self._state is FormattingState.FORMATTING,
            )

    def update_input(self, text: str) -> None:
        with self._lock:
            self._input_text = text or ""

    def start_format(self, raw_input: Optional[str] = None) -> bool:
        """Begin formatting ``raw_input`` (or the current input).

        Returns ``False`` without doing anything when a format is already in
        progress.
        """
        with self._lock:
            if self._state is FormattingState.FORMATTING:
                LOGGER.info("Format already in progress; ignoring request")
                return False
            if raw_input is not None:
                self._input_text = raw_input
            self._output_text = ""
            self._state = FormattingState.FORMATTING
            stale = self._session
            if stale is not None:
                stale.token.cancel()
            session = FormattingSession()
            self._session = session
            prompt = self._prompt_builder(self._input_text)

        if stale is not None and stale.thread is not None:
            stale.thread.join()

        session.thread = threading.Thread(
            target=self._run_session,
            args=(session, prompt),
            name=f"screenplay-format-{session.id}",
            daemon=True,
        )
        LOGGER.info("Starting format session %d", session.id)
        session.thread.start()
        return True

    def reformat(self) -> Optional[str]:
        """Re-submit the current input.  Returns a validation message when there is none."""

        with self._lock:
            has_input = bool(self._input_text)
        if not has_input:
            return REROLL_EMPTY_MESSAGE
        self.start_format()
        return None

    def cancel(self) -> bool:
        with self._lock:
            session = self._session
        if session is None:
            return False
        LOGGER.info("Cancelling format session %d", session.id)
        session.token.cancel()
        return True

    def clear(self) -> None:
        with self._lock:
            self._input_text = ""
            self._output_text = ""

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the active session finishes.  Returns ``True`` when idle."""

        with self._lock:
            session = self._session
        if session is not None and session.thread is not None:
            session.thread.join(timeout)
        return not self.is_formatting

    def _publish(self, session: FormattingSession, text: str) -> None:
        with self._lock:
            if self._session is session and not session.token.cancelled:
                self._output_text = text

    def _run_session(self, session: FormattingSession, prompt: str) -> None:
        try:
            result = self._generator.generate_response(
                prompt,
                cancel_token=session.token,
                on_progress=partial(self._publish, session),
            )
        except GenerationCancelled:
            LOGGER.info("Format request %d was aborted", session.id)
        except GenerationError as exc:
            LOGGER.error("Error formatting script: %s", exc)
            self._publish(session, f"Error: {exc}. Please try again.")
        except Exception:
            LOGGER.exception("Unexpected error while formatting script")
            self._publish(session, "Error: An unknown error occurred. Please try again.")
        else:
            self._publish(session, result)
        finally:
            with self._lock:
                if self._session is session:
                    self._state = FormattingState.IDLE
                    self._session = None
            LOGGER.info("Formatting session %d completed", session.id)


def get_formatting_orchestrator() -> FormattingOrchestrator:
    """Return the process-wide orchestrator, creating it on first use."""

    app = current_app
    with _ORCHESTRATOR_LOCK:
        orchestrator = app.config.get(ORCHESTRATOR_KEY)
        if orchestrator is None:
            orchestrator = FormattingOrchestrator(_get_text_generator())
            app.config[ORCHESTRATOR_KEY] = orchestrator
    return orchestrator


def _get_text_generator() -> Any:  # pragma: no cover - integration point
    app = current_app
    if GENERATOR_KEY in app.config:
        return app.config[GENERATOR_KEY]

    from text_generator import TextGenerator

    generator = TextGenerator.from_config(app.config)
    app.logger.info("Using text generator %s with model %s", generator.endpoint, generator.model)
    app.config[GENERATOR_KEY] = generator
    return generator
