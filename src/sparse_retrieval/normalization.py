from __future__ import annotations

import unicodedata

MAX_NEWLINE_RUN = 2


def normalize(text: str) -> str:
    """Return the canonical form of `text` used for chunking and hashing.

    Applies NFC composition, drops carriage returns, caps newline runs at one
    blank line (so paragraph separators survive for structured chunking),
    collapses other whitespace runs to a single space and strips both ends.
    The result is stable under repeated application.
    """
    parts: list[str] = []
    last_was_space = False
    newline_run = 0
    for char in unicodedata.normalize("NFC", text):
        if char == "\r":
            continue
        if char == "\n":
            if parts and parts[-1] == " ":
                parts.pop()
            if newline_run < MAX_NEWLINE_RUN:
                parts.append("\n")
            newline_run += 1
            last_was_space = True
        elif char.isspace():
            if not last_was_space:
                parts.append(" ")
                last_was_space = True
        else:
            parts.append(char)
            last_was_space = False
            newline_run = 0
    return "".join(parts).strip()
