"""Helpers for preparing user text for model prompts and reading model output."""

import re

TRIM_NOTICE = "\n\n[Content trimmed]"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def sanitize_prompt_input(text: str | None, max_length: int = 0) -> str:
    """Prepare user input for a prompt.

    Content is passed through unchanged; it is only trimmed when a positive
    ``max_length`` is set, in which case a trim notice is appended.

    Example:
        >>> sanitize_prompt_input("a" * 10, 4)
        'aaaa\\n\\n[Content trimmed]'
        >>> sanitize_prompt_input("unchanged", 0)
        'unchanged'
    """
    if not text:
        return ""
    if max_length > 0 and len(text) > max_length:
        return text[:max_length] + TRIM_NOTICE
    return text


def extract_json_from_text(text: str) -> str | None:
    """Return the outermost ``{...}`` block in a model response, if any.

    Models often wrap JSON in prose or markdown fences; this takes
    everything from the first ``{`` to the last ``}``.
    """
    match = _JSON_OBJECT.search(text or "")
    return match.group(0) if match else None


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate ``text`` to ``max_length`` characters including ``suffix``."""
    if max_length <= 0 or len(text) <= max_length:
        return text
    return text[: max(max_length - len(suffix), 0)] + suffix


def is_bot_login(login: str | None, patterns: list[str] | tuple[str, ...]) -> bool:
    """Whether a username looks like an automation account.

    Example:
        >>> is_bot_login("github-actions[bot]", ["[bot]"])
        True
    """
    lowered = (login or "").lower()
    return any(pattern.lower() in lowered for pattern in patterns)
