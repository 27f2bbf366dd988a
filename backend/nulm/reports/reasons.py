"""Normalization of report reason tags.

Clients send the labels shown in their UI. Those are mapped onto a small set
of canonical codes; anything unrecognized becomes ``unknown`` instead of
failing the request.
"""
from typing import Iterable, List, Optional

SPAM = "spam"
VULGARISM = "vulgarism"
BANK_FRAUD = "bankFraud"
ETC = "etc"
UNKNOWN = "unknown"

CANONICAL_CODES = (SPAM, VULGARISM, BANK_FRAUD, ETC)

# Display label -> canonical code
REASON_MAPPING = {
    "스팸": SPAM,
    "비속어": VULGARISM,
    "금전요구": BANK_FRAUD,
    "기타": ETC,
    "spam": SPAM,
    "profanity": VULGARISM,
    "money request": BANK_FRAUD,
    "other": ETC,
}


def normalize_reason(tag: Optional[str]) -> str:
    if not isinstance(tag, str):
        return UNKNOWN
    tag = tag.strip()
    if tag in CANONICAL_CODES:
        return tag
    return REASON_MAPPING.get(tag) or REASON_MAPPING.get(tag.lower(), UNKNOWN)


def normalize_reasons(tags: Optional[Iterable[str]]) -> List[str]:
    return [normalize_reason(tag) for tag in (tags or [])]
