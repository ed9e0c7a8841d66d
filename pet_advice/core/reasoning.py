from typing import Optional, Tuple

DEFAULT_START_TAG = "<think>"
DEFAULT_END_TAG = "</think>"


def parse_reasoning(
    raw: str,
    start_tag: str = DEFAULT_START_TAG,
    end_tag: str = DEFAULT_END_TAG,
) -> Tuple[str, Optional[str]]:
    """Split ``raw`` into (answer, reasoning).

    The first start tag pairs with the first end tag in the text; when either
    is missing or the end tag comes first, ``raw`` is returned untouched.
    """
    start = raw.find(start_tag)
    end = raw.find(end_tag)
    if start < 0 or end <= start:
        return raw, None
    reasoning = raw[start + len(start_tag) : end].strip()
    answer = (raw[:start] + raw[end + len(end_tag) :]).strip()
    return answer, reasoning
