from typing import Any, Callable, List, Tuple

from .parsed_event import PayloadShape


def _first_choice(data: dict):
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _is_delta(data: dict) -> bool:
    choice = _first_choice(data)
    return choice is not None and isinstance(choice.get("delta"), dict)


def _is_choice_content(data: dict) -> bool:
    choice = _first_choice(data)
    return choice is not None and bool(choice.get("content"))


def _is_flat_content(data: dict) -> bool:
    return bool(data.get("content") or data.get("text"))


class StreamFormatDetector:
    """
    Single source of truth for upstream payload shapes.

    Matchers are tried in order; the first hit wins and anything unmatched
    is UNKNOWN (forwarded as-is). The list is a best-effort allowlist of
    shapes seen from upstream providers, not a complete protocol decoder.
    """

    MATCHERS: List[Tuple[PayloadShape, Callable[[dict], bool]]] = [
        (PayloadShape.DELTA, _is_delta),
        (PayloadShape.CHOICE_CONTENT, _is_choice_content),
        (PayloadShape.FLAT_CONTENT, _is_flat_content),
    ]

    @classmethod
    def detect(cls, data: Any) -> PayloadShape:
        if not isinstance(data, dict):
            return PayloadShape.UNKNOWN

        for shape, matches in cls.MATCHERS:
            if matches(data):
                return shape
        return PayloadShape.UNKNOWN
