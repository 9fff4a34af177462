from flask_wtf import FlaskForm
from wtforms import SubmitField, TextAreaField
from wtforms.validators import Length

from ..config import MAX_SCRIPT_CHARACTERS


class ScriptForm(FlaskForm):
    script = TextAreaField(
        "Screenplay draft",
        validators=[
            Length(
                max=MAX_SCRIPT_CHARACTERS,
                message=f"Scripts are limited to {MAX_SCRIPT_CHARACTERS} characters.",
            )
        ],
        render_kw={
            "maxlength": MAX_SCRIPT_CHARACTERS,
            "placeholder": "Start writing your screenplay here...",
        },
    )
    submit = SubmitField("Format")
