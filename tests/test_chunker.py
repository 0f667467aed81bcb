import pytest

from pipelines.chunker import (
    estimate_tokens,
    hard_slice_by_characters,
    split_by_sentences,
    split_chunk,
)
from helpers import make_chunk


def test_estimate_tokens_rounds_up():
    """Token estimate is the character count divided by four, rounded up."""
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("x" * 4000) == 1000


def test_small_chunk_is_returned_unchanged():
    chunk = make_chunk(content="Short text")
    result = split_chunk(chunk, max_tokens=1000)
    assert result == [chunk]
    assert result[0] is chunk


def test_oversized_unpunctuated_text_is_hard_sliced():
    """A 10k character run with no breaks ends up in character windows."""
    text = "x" * 10000
    chunk = make_chunk(chunk_id="Spacecraft#fields", content=text)

    parts = split_chunk(chunk, max_tokens=1000)

    assert [p.id for p in parts] == [
        "Spacecraft#fields_part_0",
        "Spacecraft#fields_part_1",
        "Spacecraft#fields_part_2",
    ]
    assert [len(p.full_content) for p in parts] == [3600, 3600, 2800]
    assert all(estimate_tokens(p.full_content) <= 1000 for p in parts)
    assert "".join(p.full_content for p in parts) == text


def test_10k_characters_with_small_budget():
    text = "x" * 10000
    chunk = make_chunk(chunk_id="Spacecraft#fields", content=text)

    parts = split_chunk(chunk, max_tokens=100)

    assert len(parts) > 1
    assert all(estimate_tokens(p.full_content) <= 100 for p in parts)
    assert "".join(p.full_content for p in parts) == text
    assert len({p.id for p in parts}) == len(parts)
    assert all(p.id.startswith("Spacecraft#fields_part_") for p in parts)


def test_paragraphs_are_packed_greedily():
    paragraphs = [letter * 1200 for letter in "abcde"]
    chunk = make_chunk(content="\n\n".join(paragraphs))

    parts = split_chunk(chunk, max_tokens=1000)

    assert len(parts) == 2
    assert parts[0].full_content == "\n\n".join(paragraphs[:3])
    assert parts[1].full_content == "\n\n".join(paragraphs[3:])
    assert all(estimate_tokens(p.full_content) <= 1000 for p in parts)


def test_long_paragraph_is_split_on_sentences():
    sentences = [f"This is sentence {i:03d}." for i in range(100)]
    paragraph = " ".join(sentences)
    chunk = make_chunk(content=paragraph)

    parts = split_chunk(chunk, max_tokens=100)

    assert len(parts) > 1
    assert all(estimate_tokens(p.full_content) <= 100 for p in parts)
    assert all(p.full_content.endswith(".") for p in parts)
    assert " ".join(p.full_content for p in parts) == paragraph


def test_children_keep_page_identity_and_order():
    chunk = make_chunk(chunk_id="ForceModel#overview", page_name="Force Model",
                       href="ForceModel.html", content="\n\n".join(["p" * 3000, "q" * 3000]))

    parts = split_chunk(chunk, max_tokens=1000)

    assert [p.id for p in parts] == ["ForceModel#overview_part_0", "ForceModel#overview_part_1"]
    assert all(p.page_name == "Force Model" for p in parts)
    assert all(p.href == "ForceModel.html" for p in parts)
    assert parts[0].full_content.startswith("p")
    assert parts[1].full_content.startswith("q")


def test_pending_paragraphs_flush_before_oversized_one():
    short = "Short intro paragraph."
    chunk = make_chunk(content=f"{short}\n\n{'z' * 8000}")

    parts = split_chunk(chunk, max_tokens=1000)

    assert parts[0].full_content == short
    assert all(estimate_tokens(p.full_content) <= 1000 for p in parts)
    assert "".join(p.full_content for p in parts[1:]) == "z" * 8000


def test_whitespace_only_content_produces_no_children():
    chunk = make_chunk(content=" " * 100)
    assert split_chunk(chunk, max_tokens=1) == [chunk]


def test_split_by_sentences_keeps_unterminated_tail():
    assert split_by_sentences("One. Two! Three? tail") == ["One.", "Two!", "Three?", "tail"]


def test_split_by_sentences_ignores_inner_periods():
    assert split_by_sentences("Pi is 3.14 roughly. Done.") == ["Pi is 3.14 roughly.", "Done."]


@pytest.mark.parametrize("max_tokens,expected", [
    (1, ["abc", "def", "ghi", "j"]),
    (10, ["abcdefghij"]),
])
def test_hard_slice_by_characters(max_tokens, expected):
    assert hard_slice_by_characters("abcdefghij", max_tokens) == expected
