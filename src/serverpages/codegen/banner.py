from __future__ import annotations

import json

GENERATED_BY = "serverpages generate"
_RULE = "-----------------------------------------------------------"


def python_banner(*extra: str) -> str:
    lines = [
        f"# {_RULE}",
        f"# THIS FILE IS AUTO-GENERATED by `{GENERATED_BY}`",
        *(f"# {line}" for line in extra),
        f"# {_RULE}",
    ]
    return "\n".join(lines) + "\n"


def ts_banner() -> str:
    return "\n".join(
        [
            "/**",
            f" * {_RULE}",
            f" * THIS FILE IS AUTO-GENERATED by `{GENERATED_BY}`",
            f" * {_RULE}",
            " */",
        ]
    ) + "\n"


def py_str(value: str) -> str:
    """A double-quoted Python string literal."""
    return json.dumps(value, ensure_ascii=False)
