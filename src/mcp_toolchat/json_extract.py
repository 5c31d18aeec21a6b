"""Best-effort extraction of a JSON object from free-form LLM output.

Models are asked to answer with JSON only, but routinely wrap it in prose or
markdown fences. :func:`extract_json_object` scans for the first ``{`` that
starts a well-formed object and returns it, or ``None`` when nothing in the
text decodes to a JSON object.
"""

import json
from typing import Any

_decoder = json.JSONDecoder()


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)

    return None
