import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from screenplay_app.services.formatting import (
    REROLL_EMPTY_MESSAGE,
    FormattingOrchestrator,
    FormattingState,
)
from system_prompts import build_format_prompt
from text_generator import ExhaustedRetries, GenerationCancelled, TransientNetworkError


class DummyGenerator:
    def __init__(self, tokens=("INT. KITCHEN - DAY\n", "JOHN\n", "Hello there.")):
        self.tokens = tokens
        self.prompts = []

    def generate_response(self, prompt, *, cancel_token=None, on_progress=None):
        self.prompts.append(prompt)
        text = ""
        for token in self.tokens:
            text += token
            on_progress(text)
        return text


class BlockingGenerator:
    """Emits nothing until released; honours cancellation while blocked."""

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = 0
        self.on_progress = None

    def generate_response(self, prompt, *, cancel_token=None, on_progress=None):
        self.calls += 1
        self.on_progress = on_progress
        self.started.set()
        while not self.release.wait(0.01):
            if cancel_token.cancelled:
                raise GenerationCancelled()
        on_progress("FADE IN:")
        return "FADE IN:"


class FailingGenerator:
    def __init__(self, exc):
        self.exc = exc

    def generate_response(self, prompt, *, cancel_token=None, on_progress=None):
        raise self.exc


def test_start_format_stores_streamed_output():
    generator = DummyGenerator()
    orchestrator = FormattingOrchestrator(generator)

    assert orchestrator.start_format("int. kitchen - day\njohn says hello there")
    assert orchestrator.wait(timeout=5)

    snapshot = orchestrator.snapshot()
    assert snapshot.output_text == "INT. KITCHEN - DAY\nJOHN\nHello there."
    assert snapshot.input_text == "int. kitchen - day\njohn says hello there"
    assert not snapshot.is_formatting
    assert orchestrator.state is FormattingState.IDLE
    assert generator.prompts == [build_format_prompt("int. kitchen - day\njohn says hello there")]


def test_second_start_while_formatting_is_a_no_op():
    generator = BlockingGenerator()
    orchestrator = FormattingOrchestrator(generator)

    assert orchestrator.start_format("first draft")
    assert generator.started.wait(5)
    assert orchestrator.is_formatting
    assert orchestrator.start_format("second draft") is False

    generator.release.set()
    assert orchestrator.wait(timeout=5)
    assert generator.calls == 1
    assert orchestrator.snapshot().input_text == "first draft"
    assert orchestrator.snapshot().output_text == "FADE IN:"


def test_start_format_clears_previous_output():
    orchestrator = FormattingOrchestrator(DummyGenerator())
    orchestrator.start_format("draft")
    orchestrator.wait(timeout=5)
    assert orchestrator.snapshot().output_text

    blocking = BlockingGenerator()
    orchestrator._generator = blocking
    orchestrator.start_format("draft again")
    assert blocking.started.wait(5)
    assert orchestrator.snapshot().output_text == ""

    orchestrator.cancel()
    orchestrator.wait(timeout=5)


def test_cancel_returns_to_idle_silently():
    generator = BlockingGenerator()
    orchestrator = FormattingOrchestrator(generator)

    orchestrator.start_format("draft")
    assert generator.started.wait(5)
    assert orchestrator.cancel()
    assert orchestrator.wait(timeout=5)

    snapshot = orchestrator.snapshot()
    assert not snapshot.is_formatting
    assert not snapshot.output_text.startswith("Error")
    assert orchestrator.cancel() is False


def test_progress_from_cancelled_session_is_discarded():
    generator = BlockingGenerator()
    orchestrator = FormattingOrchestrator(generator)

    orchestrator.start_format("draft")
    assert generator.started.wait(5)
    orchestrator.cancel()
    orchestrator.wait(timeout=5)

    generator.on_progress("late text from a dead request")

    assert orchestrator.snapshot().output_text == ""


def test_generation_error_becomes_output_text():
    exc = ExhaustedRetries(3, TransientNetworkError("HTTP error! status: 500"))
    orchestrator = FormattingOrchestrator(FailingGenerator(exc))

    orchestrator.start_format("draft")
    orchestrator.wait(timeout=5)

    assert orchestrator.snapshot().output_text == (
        "Error: Generation failed after 3 attempts: HTTP error! status: 500. Please try again."
    )
    assert orchestrator.state is FormattingState.IDLE


def test_unexpected_error_is_reported_generically():
    orchestrator = FormattingOrchestrator(FailingGenerator(KeyError("boom")))

    orchestrator.start_format("draft")
    orchestrator.wait(timeout=5)

    assert orchestrator.snapshot().output_text == "Error: An unknown error occurred. Please try again."


def test_reformat_without_input_reports_validation_message():
    generator = DummyGenerator()
    orchestrator = FormattingOrchestrator(generator)

    assert orchestrator.reformat() == REROLL_EMPTY_MESSAGE
    assert generator.prompts == []
    assert not orchestrator.is_formatting


def test_reformat_resubmits_identical_prompt():
    generator = DummyGenerator()
    orchestrator = FormattingOrchestrator(generator)

    orchestrator.start_format("EXT. PARK - DAY\nBirds sing.")
    orchestrator.wait(timeout=5)
    assert orchestrator.reformat() is None
    orchestrator.wait(timeout=5)

    assert len(generator.prompts) == 2
    assert generator.prompts[0] == generator.prompts[1]


def test_clear_resets_input_and_output():
    orchestrator = FormattingOrchestrator(DummyGenerator())
    orchestrator.start_format("draft")
    orchestrator.wait(timeout=5)

    orchestrator.clear()

    snapshot = orchestrator.snapshot()
    assert snapshot.input_text == ""
    assert snapshot.output_text == ""


@pytest.mark.parametrize("script", ["", "A short scene.", "x" * 1875])
def test_format_prompt_wraps_script_with_instructions(script):
    prompt = build_format_prompt(script)

    assert prompt.startswith("You are a professional screenplay formatter.")
    assert script in prompt
    assert "Convert script to present tense" in prompt
    assert build_format_prompt(script) == prompt
