"""
JSON utilities for cleaning LLM responses.
"""

import re

_FENCED_BLOCK_RE = re.compile(r'```(?:json)?\s*(.*?)```', re.DOTALL)


def clean_json_response(response: str) -> str:
    """Strip code fences and surrounding prose from an LLM JSON answer.

    Handles a response wrapped in a fence, a response cut at the closing fence
    (the assistant turn is often prefilled with ```json), a fenced block embedded
    in prose, and prose before the first brace or bracket.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]
    else:
        match = _FENCED_BLOCK_RE.search(response)
        if match and match.group(1).strip():
            response = match.group(1)

    response = response.strip()
    if response.endswith('```'):
        response = response[:-3].strip()

    if response and response[0] not in '{[':
        starts = [i for i in (response.find('{'), response.find('[')) if i >= 0]
        if starts:
            response = response[min(starts):]

    return response.strip()
