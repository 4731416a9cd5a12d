"""
Answer matching.

Both the user's input and every expected answer go through the same
normalization before they are compared, so authors can write answers in any
case and with or without trailing spaces or emoji presentation selectors.
"""
import re
from typing import Iterable, List, Mapping, Optional, Union

from verifychat.core.variables import interpolate
from verifychat.store.models import MatchType

# Variation selectors (VS1-VS16 and the supplement VS17-VS256)
_VARIATION_SELECTORS_RE = re.compile("[\uFE00-\uFE0F\U000E0100-\U000E01EF]")


def normalize(s: Optional[str]) -> str:
    if not s:
        return ""
    return _VARIATION_SELECTORS_RE.sub("", s).lower().strip()


def split_answers(raw: Optional[str]) -> List[str]:
    """Split a comma-separated answer list, keeping the raw (un-normalized) pieces."""
    if not raw:
        return []
    return [part for part in raw.split(",") if part.strip()]


def candidates(
    expected_answers: Union[str, Iterable[str], None],
    variables: Optional[Mapping[str, str]] = None,
) -> List[str]:
    if expected_answers is None:
        return []
    if isinstance(expected_answers, str):
        raw = split_answers(expected_answers)
    else:
        raw = list(expected_answers)
    out = []
    for answer in raw:
        c = normalize(interpolate(answer, variables or {}))
        if c:
            out.append(c)
    return out


def match(
    user_input: str,
    expected_answers: Union[str, Iterable[str], None],
    match_type: Union[MatchType, str] = MatchType.CONTAINS,
    variables: Optional[Mapping[str, str]] = None,
) -> bool:
    text = normalize(user_input)
    options = candidates(expected_answers, variables)
    if not options:
        return False
    if MatchType(match_type) == MatchType.EXACT:
        return any(text == c for c in options)
    return any(c in text for c in options)
