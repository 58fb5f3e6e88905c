"""Digit and separator normalization for Arabic-script messages."""

from __future__ import annotations

# Arabic-Indic digits ٠-٩, Arabic decimal separator ٫, Arabic comma ،
_ARABIC_TO_ASCII = str.maketrans({
    **{chr(0x0660 + d): str(d) for d in range(10)},
    "٫": ".",
    "،": ",",
})


def normalize_digits(text: str) -> str:
    """Return ``text`` with Arabic-Indic digits and separators in ASCII.

    One-to-one character mapping, so character offsets into the result
    line up with offsets into the input.
    """
    return text.translate(_ARABIC_TO_ASCII)
