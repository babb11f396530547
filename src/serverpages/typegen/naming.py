from __future__ import annotations

import re

_BRACKETS = re.compile(r"\[([^\]]+)\]")
_SEPARATORS = re.compile(r"[^0-9a-zA-Z]+")
_SIBILANT_ES = re.compile(r"(s|x|z|ch|sh)es$")


def studly(text: str) -> str:
    """`users/[user]/edit` -> `UsersUserEdit`, `todo_items` -> `TodoItems`."""
    normalized = _BRACKETS.sub(r"_\1_", text)
    parts = [part for part in _SEPARATORS.split(normalized) if part]
    return "".join(part[:1].upper() + part[1:] for part in parts)


def singular_candidates(word: str) -> list[str]:
    """
    Plausible singular forms, most specific first.

    English plurals are irregular enough that a single answer is wrong often
    (`statuses` vs `notes`), so callers try each against known names.
    """
    out: list[str] = []
    if word.endswith("ies") and len(word) > 3:
        out.append(word[:-3] + "y")
    if _SIBILANT_ES.search(word):
        out.append(word[:-2])
    if word.endswith("s") and not word.endswith("ss"):
        out.append(word[:-1])
    out.append(word)

    return [w for w in dict.fromkeys(out) if w]
