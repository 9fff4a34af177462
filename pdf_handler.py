"""Export formatted screenplay text to a paginated PDF document.

The exporter receives the raw model output, re-derives the screenplay
elements through :mod:`script_classifier` and lays them out with FPDF.
Dialogue is wrapped to a narrow centred column, action runs full width from
the left margin, and a new page is started whenever the vertical cursor runs
past the printable area.
"""
from __future__ import annotations

from typing import List
import textwrap
import unicodedata

from fpdf import FPDF

from script_classifier import LineKind, classify_script


class PDFExportError(RuntimeError):
    """Raised when exporting a screenplay to PDF fails."""


FONT_FAMILY = "Courier"
FONT_SIZE = 12
TOP_MARGIN = 20.0
BOTTOM_MARGIN = 20.0
BLOCK_X = 25.0
DIALOGUE_WIDTH = 100.0
ACTION_WIDTH = 160.0

HEADING_ADVANCE = 10.0
WRAPPED_LINE_ADVANCE = 7.0
BLOCK_GAP = 3.0
BLANK_LINE_ADVANCE = 5.0

_PDF_LATIN1_REPLACEMENTS = {
    ord("\u2010"): "-",  # hyphen
    ord("\u2011"): "-",  # non-breaking hyphen
    ord("\u2013"): "-",  # en dash
    ord("\u2014"): "-",  # em dash
    ord("\u2212"): "-",  # minus sign
    ord("\u2018"): "'",
    ord("\u2019"): "'",
    ord("\u201C"): '"',
    ord("\u201D"): '"',
    ord("\u00AB"): '"',
    ord("\u00BB"): '"',
    ord("\u2026"): "...",
    ord("\u00A0"): " ",  # non-breaking space
    ord("\u2009"): " ",  # thin space
    ord("\u202F"): " ",  # narrow no-break space
    ord("\u200B"): "",  # zero-width space
    ord("\uFEFF"): "",  # BOM
}


def _pdf_safe_text(text: str) -> str:
    """Return ``text`` normalised for the PDF Latin-1 core fonts."""

    normalized = unicodedata.normalize("NFKC", text or "")
    normalized = normalized.replace("\t", " ")
    replaced = normalized.translate(_PDF_LATIN1_REPLACEMENTS)
    return replaced.encode("latin-1", "replace").decode("latin-1")


def _wrap_to_width(pdf: FPDF, text: str, width_mm: float) -> List[str]:
    """Wrap ``text`` so every line fits ``width_mm`` in the current (monospaced) font."""

    chars_per_line = max(1, int(width_mm // pdf.get_string_width("M")))
    return textwrap.wrap(
        text,
        width=chars_per_line,
        break_long_words=True,
        break_on_hyphens=False,
    ) or [""]


class _ScreenplayLayout:
    def __init__(self, pdf: FPDF) -> None:
        self.pdf = pdf
        self.y = TOP_MARGIN

    @property
    def printable_bottom(self) -> float:
        return self.pdf.h - BOTTOM_MARGIN

    def ensure_room(self) -> None:
        if self.y > self.printable_bottom:
            self.pdf.add_page()
            self.y = TOP_MARGIN

    def _centred_x(self, text: str) -> float:
        return (self.pdf.w - self.pdf.get_string_width(text)) / 2

    def single_line(self, text: str, *, bold: bool, centred: bool) -> None:
        self.ensure_room()
        self.pdf.set_font(FONT_FAMILY, "B" if bold else "", FONT_SIZE)
        x = self._centred_x(text) if centred else BLOCK_X
        self.pdf.text(x, self.y, text)
        self.y += HEADING_ADVANCE

    def wrapped_block(self, text: str, *, width: float, centred: bool) -> None:
        self.ensure_room()
        self.pdf.set_font(FONT_FAMILY, "", FONT_SIZE)
        for piece in _wrap_to_width(self.pdf, text, width):
            self.ensure_room()
            x = self._centred_x(piece) if centred else BLOCK_X
            self.pdf.text(x, self.y, piece)
            self.y += WRAPPED_LINE_ADVANCE
        self.y += BLOCK_GAP

    def blank(self) -> None:
        self.y += BLANK_LINE_ADVANCE


def build_screenplay_pdf(script_text: str) -> FPDF:
    """Lay out ``script_text`` and return the populated :class:`FPDF` document."""

    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=False)
    pdf.add_page()
    layout = _ScreenplayLayout(pdf)

    for line in classify_script(script_text):
        text = _pdf_safe_text(line.text).strip()
        if not text:
            layout.blank()
        elif line.kind is LineKind.SCENE_HEADING:
            layout.single_line(text, bold=True, centred=False)
        elif line.kind in (LineKind.TRANSITION, LineKind.CHARACTER):
            layout.single_line(text, bold=True, centred=True)
        elif line.kind is LineKind.PARENTHETICAL:
            layout.single_line(text, bold=False, centred=True)
        elif line.kind is LineKind.DIALOGUE:
            layout.wrapped_block(text, width=DIALOGUE_WIDTH, centred=True)
        else:
            layout.wrapped_block(text, width=ACTION_WIDTH, centred=False)

    return pdf


def render_screenplay_pdf(script_text: str) -> bytes:
    """Return the PDF document for ``script_text`` as bytes."""

    try:
        return bytes(build_screenplay_pdf(script_text).output())
    except PDFExportError:
        raise
    except Exception as exc:  # pragma: no cover
        raise PDFExportError(f"Unable to render PDF: {exc}") from exc


__all__ = [
    "PDFExportError",
    "build_screenplay_pdf",
    "render_screenplay_pdf",
]
