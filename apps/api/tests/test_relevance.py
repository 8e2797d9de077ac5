import random

import pytest

from services.categories import Category
from services.relevance import find_relevant_items, promote_genre


@pytest.fixture
def mixed_pool():
    return [
        {
            "type": "dialogue",
            "dialogue": "Em ra idhi, endhuku ala choostunnav?",
            "situation": "when seeing something unexpected",
            "tags": ["confusion", "funny", "reaction"],
        },
        {
            "type": "dialogue",
            "dialogue": "How you doin?",
            "situation": "when hitting on someone",
            "tags": ["flirt", "friends"],
        },
        {
            "type": "meme",
            "dialogue": "This is fine",
            "situation": "when everything is going wrong",
            "tags": ["reaction", "stress"],
        },
        {
            "type": "trend",
            "dialogue": "Skibidi Toilet",
            "situation": "when something is weird",
            "tags": ["weird", "viral"],
        },
    ]


def test_returns_only_the_relevant_dialogue(mixed_pool):
    result = find_relevant_items("unexpected situation", mixed_pool, "dialogue", 2)

    assert len(result) == 1
    assert result[0]["dialogue"] == "Em ra idhi, endhuku ala choostunnav?"
    assert result[0]["type"] == "dialogue"


def test_filters_by_category(mixed_pool):
    result = find_relevant_items("weird", mixed_pool, Category.TREND, 1)

    assert len(result) == 1
    assert result[0]["type"] == "trend"
    assert result[0]["dialogue"] == "Skibidi Toilet"


def test_falls_back_to_random_sample_when_nothing_matches(mixed_pool):
    result = find_relevant_items("nonexistent topic xyz", mixed_pool, "dialogue", 2, rng=random.Random(3))

    assert len(result) == 2
    assert {item["type"] for item in result} == {"dialogue"}


def test_fallback_sample_is_reproducible_with_seeded_rng(mixed_pool):
    first = find_relevant_items("zzz qqq", mixed_pool, None, 3, rng=random.Random(11))
    second = find_relevant_items("zzz qqq", mixed_pool, None, 3, rng=random.Random(11))

    assert first == second
    assert len(first) == 3


def test_fallback_never_exceeds_pool_size(mixed_pool):
    result = find_relevant_items("zzz qqq", mixed_pool, "meme", 5)

    assert len(result) == 1
    assert result[0]["type"] == "meme"


@pytest.mark.parametrize("query", ["unexpected", "weird", "reaction", "nothing like this", ""])
@pytest.mark.parametrize("category", ["dialogue", "meme", "trend"])
@pytest.mark.parametrize("limit", [0, 1, 2])
def test_result_bound_and_category(mixed_pool, query, category, limit):
    result = find_relevant_items(query, mixed_pool, category, limit)

    assert len(result) <= limit
    assert all(item["type"] == category for item in result)


def test_empty_pool_returns_empty_list(mixed_pool):
    assert find_relevant_items("anything", [], "dialogue", 3) == []
    assert find_relevant_items("anything", mixed_pool, "unknown-category", 3) == []


def test_genre_promotes_tagged_matches():
    pool = [
        {"type": "dialogue", "text": "Line one", "situation": "exam results day", "tags": ["romantic"]},
        {"type": "dialogue", "text": "Line two", "situation": "exam results day", "tags": ["Comedy", "exams"]},
        {"type": "dialogue", "text": "Line three", "situation": "exam results day", "tags": []},
    ]

    result = find_relevant_items("exam results", pool, "dialogue", 3, genre="comedy")

    assert [item["text"] for item in result] == ["Line two", "Line one", "Line three"]


def test_promote_genre_is_a_stable_partition():
    items = [
        {"text": "a", "tags": ["savage"]},
        {"text": "b", "tags": ["mass", "Savage-mode"]},
        {"text": "c", "tags": "comedy"},
        {"text": "d"},
    ]

    assert [item["text"] for item in promote_genre(items, "SAVAGE")] == ["a", "b", "c", "d"]
    assert [item["text"] for item in promote_genre(items, "comedy")] == ["c", "a", "b", "d"]
    assert promote_genre(items, None) == items
