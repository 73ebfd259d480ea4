import json
import re

_OPEN_TO_CLOSE = {"{": "}", "[": "]"}


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if present."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def outermost_json_span(text: str) -> str:
    """
    Return the span from the first '{' or '[' to the last matching closer.
    Local models like to wrap JSON in prose; the span is what we parse.
    Returns the text unchanged when no opener is found.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = text.rfind(_OPEN_TO_CLOSE[text[start]])
    if end <= start:
        return text
    return text[start:end + 1]


def extract_json(text: str):
    """
    Parse JSON out of raw model output.
    Raises ValueError (json.JSONDecodeError is a subclass) on failure.
    """
    if not text or not text.strip():
        raise ValueError("Empty model output")
    cleaned = strip_code_fence(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return json.loads(outermost_json_span(cleaned))
