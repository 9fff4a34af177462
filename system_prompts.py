"""Central configuration for the prompts sent to the text generator."""

from __future__ import annotations

SYSTEM_PROMPTS = {
    "screenplay_format": {
        "base": (
            "You are a professional screenplay formatter. Format the following text into a "
            "professional Hollywood standard screenplay format."
        ),
        "instructions": (
            "IMPORTANT INSTRUCTIONS:\n"
            "- Preserve all original content and story structure\n"
            "- Make sure to output the full original character count, including spaces and punctuations\n"
            "- Convert script to present tense and check spelling and grammar\n"
            "- Format the output as a proper screenplay with scene headings, action lines, character "
            "names, parentheticals, and dialogue"
        ),
        "template": "{base}\n\n{script}\n\n{instructions}",
    },
}


def get_prompt_template(name: str) -> str:
    """Return the raw template string configured for ``name``."""

    entry = SYSTEM_PROMPTS[name]
    return entry["template"]


def build_format_prompt(script_text: str) -> str:
    """Wrap ``script_text`` with the screenplay formatting instructions.

    The result depends only on ``script_text`` so a re-roll sends exactly the
    same prompt again.
    """

    entry = SYSTEM_PROMPTS["screenplay_format"]
    return get_prompt_template("screenplay_format").format(
        base=entry["base"],
        script=script_text or "",
        instructions=entry["instructions"],
    )


__all__ = ["SYSTEM_PROMPTS", "build_format_prompt", "get_prompt_template"]
