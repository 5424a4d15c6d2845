"""
Pulls structured values out of raw LLM text.

Only locates a payload: a cut-off answer whose braces never balance comes
back as None and is never patched up, so callers can reject it as malformed.
"""

import re
from typing import Optional

_FENCE = re.compile(r"^```[A-Za-z]*\s*|\s*```$")
_FIRST_INT = re.compile(r"-?\d+")


def strip_fences(text: str) -> str:
    """Drop a surrounding markdown code fence, if any."""
    return _FENCE.sub("", text.strip())


def extract_json_object(text: str) -> Optional[str]:
    """First complete top-level ``{...}`` block in ``text``, or None."""
    body = strip_fences(text)
    start = body.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(body)):
        ch = body[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return body[start:pos + 1]
    return None


def parse_first_int(text: str) -> Optional[int]:
    """First signed integer in free text ("Score: 72/100" -> 72), or None."""
    match = _FIRST_INT.search(text)
    return int(match.group(0)) if match else None
