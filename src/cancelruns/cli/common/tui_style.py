"""Prompt style for the cancel confirmation.

Questionary renders through prompt_toolkit, which does not understand the
Rich theme of `output.py`; the colors below mirror it (cyan questions,
yellow for the destructive answer) so the prompt blends into the run table
printed right above it.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansicyan",
        "question": "bold ansicyan",
        "answer": "bold ansiyellow",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)
