from support_agent.retrieval.normalize import (
    CONTENT_PRECEDENCE,
    RetrievalHit,
    extract_field,
    format_context,
    normalize_hit,
    normalize_hits,
    to_display_hit,
)


def test_fields_text_wins_over_metadata_content():
    hit = {"_id": "d1", "_score": 0.5, "fields": {"text": "X"}, "metadata": {"content": "Y"}}

    assert normalize_hit(hit).content == "X"


def test_precedence_is_independent_of_key_order():
    first = {"metadata": {"text": "M"}, "fields": {"excerpt": "E", "content": "C"}}
    second = {"fields": {"content": "C", "excerpt": "E"}, "metadata": {"text": "M"}}

    assert extract_field(first, CONTENT_PRECEDENCE) == "C"
    assert extract_field(second, CONTENT_PRECEDENCE) == "C"


def test_empty_values_fall_through_to_next_candidate():
    hit = {"fields": {"text": "", "content": None}, "metadata": {"excerpt": "From metadata"}}

    assert extract_field(hit, CONTENT_PRECEDENCE) == "From metadata"


def test_missing_content_defaults_to_empty_string():
    hit = normalize_hit({"_id": "d1", "_score": 0.2})

    assert hit.content == ""
    assert hit.title == "Untitled"
    assert hit.metadata == {}


def test_title_and_merged_metadata():
    hit = normalize_hit(
        {
            "id": 7,
            "score": "0.75",
            "fields": {"title": "Field title", "text": "Body", "shared": "fields"},
            "metadata": {"title": "Meta title", "shared": "metadata"},
        }
    )

    assert hit.id == "7"
    assert hit.score == 0.75
    assert hit.title == "Meta title"
    assert hit.metadata["shared"] == "metadata"
    assert hit.metadata["text"] == "Body"


def test_normalization_is_idempotent_over_its_own_output():
    hit = normalize_hit({"_id": "d1", "_score": 0.4, "fields": {"text": "Body", "title": "T"}})

    again = normalize_hit({"_id": hit.id, "_score": hit.score, "fields": hit.metadata})

    assert again == hit


def test_title_falls_back_to_fields_when_metadata_has_none():
    hit = normalize_hit({"_id": "d1", "fields": {"title": "Field title"}, "metadata": {"title": ""}})

    assert hit.title == "Field title"


def test_normalize_hits_skips_non_mappings():
    assert [h.id for h in normalize_hits([{"_id": "a"}, "junk", None])] == ["a"]
    assert normalize_hits(None) == []


def test_format_context_blocks():
    context = format_context(
        [
            RetrievalHit(id="a", score=0.9123, content="First", title="Hours"),
            RetrievalHit(id="b", score=0.5, content="Second"),
        ]
    )

    assert context == (
        "[Document: Hours, ID: a, Score: 0.912]\nFirst"
        "\n\n---\n\n"
        "[Document: Untitled, ID: b, Score: 0.500]\nSecond"
    )


def test_display_hit_maps_optional_links():
    hit = RetrievalHit(
        id="a",
        score=0.9,
        content="Body",
        title="Handbook",
        metadata={"file_path": "docs/handbook.pdf", "url": "https://example.org/h", "description": "Parent handbook"},
    )

    display = to_display_hit(hit)

    assert display["filePath"] == "docs/handbook.pdf"
    assert display["url"] == "https://example.org/h"
    assert display["description"] == "Parent handbook"
    assert display["metadata"] is hit.metadata


def test_display_hit_without_links():
    display = to_display_hit(RetrievalHit(id="a", score=0.1))

    assert set(display) == {"id", "title", "score", "content", "metadata"}
