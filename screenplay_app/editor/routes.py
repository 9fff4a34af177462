from __future__ import annotations

from io import BytesIO

from flask import current_app, jsonify, render_template, send_file

from pdf_handler import PDFExportError, render_screenplay_pdf
from script_classifier import classify_script

from ..services.formatting import get_formatting_orchestrator
from . import bp
from .forms import ScriptForm


def _form_errors(form: ScriptForm) -> str:
    messages = [message for errors in form.errors.values() for message in errors]
    return " ".join(messages) or "The submitted script is invalid."


def _status_payload() -> dict:
    snapshot = get_formatting_orchestrator().snapshot()
    lines = classify_script(snapshot.output_text) if snapshot.output_text else []
    return {
        "input": snapshot.input_text,
        "output": snapshot.output_text,
        "is_formatting": snapshot.is_formatting,
        "lines": [line.to_dict() for line in lines],
    }


@bp.route("/")
def index():
    form = ScriptForm()
    snapshot = get_formatting_orchestrator().snapshot()
    form.script.data = snapshot.input_text
    lines = classify_script(snapshot.output_text) if snapshot.output_text else []
    return render_template(
        "editor/index.html",
        form=form,
        lines=lines,
        is_formatting=snapshot.is_formatting,
        max_characters=current_app.config["MAX_SCRIPT_CHARACTERS"],
    )


@bp.route("/format", methods=["POST"])
def start_format():
    form = ScriptForm()
    if not form.validate_on_submit():
        return jsonify({"error": _form_errors(form)}), 400

    orchestrator = get_formatting_orchestrator()
    if not orchestrator.start_format(form.script.data or ""):
        return jsonify({"error": "A format is already in progress.", **_status_payload()}), 409

    return jsonify(_status_payload()), 202


@bp.route("/reformat", methods=["POST"])
def reformat():
    form = ScriptForm()
    if not form.validate_on_submit():
        return jsonify({"error": _form_errors(form)}), 400

    orchestrator = get_formatting_orchestrator()
    if form.script.data is not None:
        orchestrator.update_input(form.script.data)
    if orchestrator.is_formatting:
        return jsonify({"error": "A format is already in progress.", **_status_payload()}), 409

    message = orchestrator.reformat()
    if message:
        return jsonify({"error": message}), 400
    return jsonify(_status_payload()), 202


@bp.route("/cancel", methods=["POST"])
def cancel():
    cancelled = get_formatting_orchestrator().cancel()
    return jsonify({"cancelled": cancelled, **_status_payload()})


@bp.route("/clear", methods=["POST"])
def clear():
    get_formatting_orchestrator().clear()
    return jsonify(_status_payload())


@bp.route("/status")
def status():
    return jsonify(_status_payload())


@bp.route("/export/pdf")
def export_pdf():
    output_text = get_formatting_orchestrator().snapshot().output_text
    if not output_text.strip():
        return jsonify({"error": "There is no formatted screenplay to export yet."}), 400

    try:
        data = render_screenplay_pdf(output_text)
    except PDFExportError as exc:
        current_app.logger.exception("PDF export failed")
        return jsonify({"error": str(exc)}), 500

    return send_file(
        BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name="screenplay.pdf",
    )
