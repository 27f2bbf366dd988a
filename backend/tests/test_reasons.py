"""Tests for report reason normalization."""
import pytest

from nulm.reports.reasons import UNKNOWN, normalize_reason, normalize_reasons


@pytest.mark.parametrize("label, code", [
    ("스팸", "spam"),
    ("비속어", "vulgarism"),
    ("금전요구", "bankFraud"),
    ("기타", "etc"),
    ("Spam", "spam"),
    ("Profanity", "vulgarism"),
    ("Money request", "bankFraud"),
    ("other", "etc"),
    (" 스팸 ", "spam"),
    ("bankFraud", "bankFraud"),
])
def test_display_labels_map_to_codes(label, code):
    assert normalize_reason(label) == code


def test_unrecognized_tags_become_unknown():
    assert normalize_reason("harassment") == UNKNOWN
    assert normalize_reason("") == UNKNOWN
    assert normalize_reason(None) == UNKNOWN
    assert normalize_reason(42) == UNKNOWN


def test_normalize_reasons_keeps_order():
    assert normalize_reasons(["기타", "nope", "스팸"]) == ["etc", "unknown", "spam"]
    assert normalize_reasons(None) == []
