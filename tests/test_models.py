"""Tests for search request validation and result types."""

import pytest

from libs.asset_store.base import RecordType
from asset_search.errors import SearchValidationError
from asset_search.models import (
    MISSING_QUERY_MESSAGE,
    RankedResult,
    SearchMode,
    SearchResponse,
    SearchTimings,
    build_search_request,
)


def test_defaults_applied():
    """limit and min_score default to 10 and 0.7."""
    request = build_search_request(free_text_query="old mill", campaign_id="c1")
    assert request.limit == 10
    assert request.min_score == 0.7
    assert request.record_type is None
    assert request.has_free_text and not request.has_keywords


def test_missing_both_queries_rejected():
    """At least one query form is required."""
    with pytest.raises(SearchValidationError) as exc_info:
        build_search_request(campaign_id="c1")
    assert MISSING_QUERY_MESSAGE in str(exc_info.value)


def test_blank_queries_count_as_missing():
    """Whitespace-only queries do not satisfy the requirement."""
    with pytest.raises(SearchValidationError):
        build_search_request(free_text_query="  ", keywords="", campaign_id="c1")


@pytest.mark.parametrize("fields,field_name", [
    ({"limit": 0}, "limit"),
    ({"min_score": 1.5}, "min_score"),
    ({"min_score": -0.1}, "min_score"),
    ({"campaign_id": ""}, "campaign_id"),
])
def test_out_of_range_fields_rejected(fields, field_name):
    """Range errors name the offending field."""
    raw = {"keywords": "tavern", "campaign_id": "c1", **fields}
    with pytest.raises(SearchValidationError) as exc_info:
        build_search_request(**raw)
    assert field_name in str(exc_info.value)


def test_record_type_parsed():
    """Record type accepts enum values."""
    request = build_search_request(keywords="king", campaign_id="c1", record_type="NPC")
    assert request.record_type is RecordType.NPC


def test_query_length_prefers_free_text():
    """Query length is measured on free text, else keywords."""
    assert build_search_request(free_text_query="abc", keywords="abcdef", campaign_id="c").query_length == 3
    assert build_search_request(keywords="abcdef", campaign_id="c").query_length == 6


def test_response_serialization():
    """Responses serialize results, mode and rounded timings."""
    result = RankedResult(id="a", attributes={"name": "A"}, relevance_score=0.9, score=1.0, mode=SearchMode.TEXT_ONLY)
    response = SearchResponse(results=[result], mode=SearchMode.TEXT_ONLY, timings=SearchTimings(total=1.23456))

    data = response.to_dict()
    assert data["mode"] == "text_only"
    assert data["results"][0] == {
        "id": "a",
        "attributes": {"name": "A"},
        "relevance_score": 0.9,
        "score": 1.0,
        "mode": "text_only",
    }
    assert data["timings"]["total"] == 1.235
    assert response.scores == [1.0]
