import pytest

from services.text_similarity import dice_similarity, is_near_duplicate, normalize_text


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Em ra IDHI, enduku!! ", "em ra idhi enduku"),
        ("na\u200cnna\u200d garu", "nanna garu"),
        ("Salary   vachindi...\tpoyindi", "salary vachindi poyindi"),
        (None, ""),
        ("", ""),
    ],
)
def test_normalize_text(raw, expected):
    assert normalize_text(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["Thaggedhe le!", "  (Mass) <Hero> {entry} ", "ఏం రా ఇది?", "a  b\n\nc", "#$%^"],
)
def test_normalize_text_is_idempotent(raw):
    once = normalize_text(raw)
    assert normalize_text(once) == once


def test_dice_similarity_identity_and_symmetry():
    first = "em ra idhi enduku ala chustunnav"
    second = "em ra idi enduku ila chustunnav"
    assert dice_similarity(first, first) == 1.0
    assert dice_similarity(first, second) == dice_similarity(second, first)
    assert 0.0 < dice_similarity(first, second) < 1.0


def test_dice_similarity_short_and_empty_strings():
    assert dice_similarity("", "") == 0.0
    assert dice_similarity("a", "b") == 0.0
    assert dice_similarity("ab", "ab") == 1.0


def test_punctuation_variant_is_near_duplicate():
    assert is_near_duplicate(
        "Em ra idhi, enduku ala chustunnav",
        "em ra idhi enduku ala chustunnav!",
        0.85,
    )


def test_unrelated_lines_are_not_duplicates():
    assert not is_near_duplicate("Thaggedhe le!", "Salary vachindi, poyindi", 0.85)


def test_empty_text_never_matches():
    assert not is_near_duplicate("", "", 0.85)
    assert not is_near_duplicate("!!!", "???", 0.85)
    assert not is_near_duplicate(None, "Thaggedhe le", 0.85)
