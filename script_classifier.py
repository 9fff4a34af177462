"""Classify the lines of a screenplay draft into typed screenplay elements.

The editor shows the model output live while it streams in, so the rules here
run on every refresh and must stay cheap, pure and total: any string (empty,
all upper-case, all blank) produces one :class:`ClassifiedLine` per input line
and nothing is ever raised.  The PDF exporter re-uses the same rules so the
on-screen preview and the exported document always agree.

Precedence, first match wins:

1. scene heading  (``INT.``/``EXT.``/``EST.``/``INT/EXT.``/``EXT/INT.``)
2. transition     (``CUT TO:``, ``DISSOLVE TO:`` ...)
3. character cue  (upper-case line that does not open with ``(``)
4. parenthetical  (``(smiling)``)
5. dialogue when a character cue governs the line, otherwise action
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence


class LineKind(str, Enum):
    SCENE_HEADING = "scene_heading"
    TRANSITION = "transition"
    CHARACTER = "character"
    PARENTHETICAL = "parenthetical"
    DIALOGUE = "dialogue"
    ACTION = "action"


@dataclass(frozen=True)
class ClassifiedLine:
    kind: LineKind
    text: str
    source_index: int

    def to_dict(self) -> Dict[str, object]:
        return {"kind": self.kind.value, "text": self.text, "source_index": self.source_index}


_SCENE_HEADING_PATTERN = re.compile(r"^(INT\.|EXT\.|EST\.|INT/EXT\.|EXT/INT\.)", re.IGNORECASE)
_TRANSITION_PATTERN = re.compile(r"^[A-Z\s]+TO:$")


def split_script_lines(script: str) -> List[str]:
    """Split ``script`` on newline boundaries, keeping blank lines."""

    return (script or "").split("\n")


def is_scene_heading(trimmed: str) -> bool:
    return bool(_SCENE_HEADING_PATTERN.match(trimmed))


def is_transition(trimmed: str) -> bool:
    return bool(_TRANSITION_PATTERN.match(trimmed))


def is_character_cue(trimmed: str) -> bool:
    return bool(trimmed) and trimmed == trimmed.upper() and not trimmed.startswith("(")


def is_parenthetical(trimmed: str) -> bool:
    return trimmed.startswith("(") and trimmed.endswith(")")


def _governs_dialogue(trimmed: str) -> bool:
    return is_character_cue(trimmed) and not is_scene_heading(trimmed) and not is_transition(trimmed)


def find_governing_cue(lines: Sequence[str], index: int) -> Optional[int]:
    """Return the index of the character cue that governs ``lines[index]``.

    Walks upwards from the previous line, stepping over blank lines and
    parentheticals.  The first other line decides: it is returned when it is
    a usable character cue, otherwise ``None``.  A plain line reached across a
    parenthetical is an earlier part of the same speech, so the walk carries
    on to that line's own cue.  The first line of a document has no governing
    cue.
    """

    probe = index - 1
    crossed_parenthetical = False
    while probe >= 0:
        trimmed = lines[probe].strip()
        if not trimmed:
            probe -= 1
            continue
        if is_parenthetical(trimmed):
            crossed_parenthetical = True
            probe -= 1
            continue
        if _governs_dialogue(trimmed):
            return probe
        if crossed_parenthetical and not is_scene_heading(trimmed) and not is_transition(trimmed):
            crossed_parenthetical = False
            probe -= 1
            continue
        return None
    return None


def attribute_quotes(text: str) -> str:
    """Wrap ``text`` in double quotes, adding only the quotes that are missing."""

    trimmed = (text or "").strip()
    if not trimmed.startswith('"'):
        trimmed = '"' + trimmed
    if not trimmed.endswith('"') or len(trimmed) == 1:
        trimmed = trimmed + '"'
    return trimmed


def classify_line(lines: Sequence[str], index: int) -> ClassifiedLine:
    raw = lines[index]
    trimmed = raw.strip()

    if is_scene_heading(trimmed):
        return ClassifiedLine(LineKind.SCENE_HEADING, trimmed.upper(), index)
    if is_transition(trimmed):
        return ClassifiedLine(LineKind.TRANSITION, trimmed, index)
    if is_character_cue(trimmed):
        return ClassifiedLine(LineKind.CHARACTER, trimmed, index)
    if is_parenthetical(trimmed):
        return ClassifiedLine(LineKind.PARENTHETICAL, trimmed, index)
    if not trimmed:
        # Blank lines separate paragraphs; they are never spoken.
        return ClassifiedLine(LineKind.ACTION, "", index)
    if index > 0 and find_governing_cue(lines, index) is not None:
        return ClassifiedLine(LineKind.DIALOGUE, attribute_quotes(trimmed), index)
    return ClassifiedLine(LineKind.ACTION, raw, index)


def classify_lines(lines: Sequence[str]) -> List[ClassifiedLine]:
    return [classify_line(lines, index) for index in range(len(lines))]


def classify_script(script: str) -> List[ClassifiedLine]:
    """Classify every line of ``script`` in order."""

    return classify_lines(split_script_lines(script))


def render_script(classified: Iterable[ClassifiedLine]) -> str:
    return "\n".join(line.text for line in classified)


__all__ = [
    "ClassifiedLine",
    "LineKind",
    "attribute_quotes",
    "classify_line",
    "classify_lines",
    "classify_script",
    "find_governing_cue",
    "is_character_cue",
    "is_parenthetical",
    "is_scene_heading",
    "is_transition",
    "render_script",
    "split_script_lines",
]
