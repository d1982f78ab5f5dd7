"""Escaping for client-supplied values rendered into email HTML."""

import html
import re
from typing import Any, Optional

# C0 controls except tab, newline and carriage return
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def escape_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return html.escape(CONTROL_CHARS.sub("", str(value)), quote=True)


def escape_fields(**values: Any) -> dict[str, Any]:
    """Escape every string keyword; non-strings (amounts, None) pass through"""
    return {key: escape_text(value) if isinstance(value, str) else value for key, value in values.items()}
