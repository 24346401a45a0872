"""Tests for response normalization."""

import httpx
import pytest
from structlog.testing import capture_logs

from services.data_access.app.core.normalizer import (
    DEFAULT_ERROR_MESSAGE,
    INVALID_JSON_MESSAGE,
    MalformedBody,
    NO_DATA_MESSAGE,
    ResponseKind,
    as_list,
    classify,
    decode_body,
    normalize,
    parse_content_disposition,
    validate_response_structure,
)
from shared.schemas.api_responses import BlobPayload


class ExplodingMapping(dict):
    """Mapping whose lookups fail."""

    def get(self, key, default=None):
        raise RuntimeError("boom")


class TestClassify:
    """Tests for response shape classification."""

    def test_bytes_are_blob(self):
        """Test raw bytes classify as a blob."""
        assert classify(b"%PDF-1.4").kind == ResponseKind.BLOB

    def test_blob_payload_is_blob(self):
        """Test BlobPayload classifies as a blob."""
        assert classify(BlobPayload(content=b"x")).kind == ResponseKind.BLOB

    def test_envelope(self):
        """Test a success flag with data is an envelope."""
        assert classify({"success": True, "data": []}).kind == ResponseKind.ENVELOPE

    def test_failed_envelope_without_data(self):
        """Test success=false without data is still an envelope."""
        assert classify({"success": False, "message": "nope"}).kind == ResponseKind.ENVELOPE

    def test_non_boolean_success_is_raw_object(self):
        """Test a non-boolean success flag is not an envelope."""
        assert classify({"success": "yes", "data": 1}).kind == ResponseKind.RAW_OBJECT

    def test_list_and_scalar(self):
        """Test bare lists and scalars."""
        assert classify([1, 2]).kind == ResponseKind.RAW_LIST
        assert classify(42).kind == ResponseKind.UNRECOGNIZED
        assert classify(None).kind == ResponseKind.EMPTY


class TestNormalize:
    """Tests for normalize()."""

    def test_paginated_wrapper(self):
        """Test nested data with pagination yields the list and PageInfo."""
        body = {
            "success": True,
            "data": {
                "data": [{"id": 1, "building_name": "A"}],
                "pagination": {"current_page": 1, "total_count": 1},
            },
        }

        result = normalize(body)

        assert result.error is None
        assert result.payload == [{"id": 1, "building_name": "A"}]
        assert result.pagination.model_dump(by_alias=True) == {
            "currentPage": 1,
            "perPage": 20,
            "totalPages": 1,
            "totalCount": 1,
            "hasNextPage": False,
            "hasPrevPage": False,
        }

    def test_failed_envelope_message(self):
        """Test success=false surfaces the server message and no payload."""
        result = normalize({"success": False, "message": "Building not found"})

        assert result.payload is None
        assert result.error == "Building not found"
        assert result.pagination is None

    def test_failed_envelope_fallback_message(self):
        """Test success=false without a message uses the default."""
        result = normalize({"success": False, "data": None})
        assert result.error == DEFAULT_ERROR_MESSAGE

    def test_failed_envelope_field_errors(self):
        """Test validation errors are exposed keyed by field."""
        result = normalize(
            {
                "success": False,
                "message": "Validation failed",
                "errors": [{"field": "end_date", "message": "must be after start_date"}],
            }
        )
        assert result.field_errors == {"end_date": "must be after start_date"}

    def test_envelope_list_with_top_level_pagination(self):
        """Test pagination beside a list payload."""
        result = normalize(
            {"success": True, "data": [{"id": 1}], "pagination": {"page": 2, "limit": 10, "total": 35}}
        )

        assert result.payload == [{"id": 1}]
        assert result.pagination.current_page == 2
        assert result.pagination.total_pages == 4
        assert result.pagination.has_next_page is True
        assert result.pagination.has_prev_page is True

    def test_envelope_single_entity(self):
        """Test an object payload has no pagination."""
        result = normalize({"success": True, "data": {"id": 7, "name": "Plant"}})

        assert result.payload == {"id": 7, "name": "Plant"}
        assert result.pagination is None

    def test_nested_object_has_no_pagination(self):
        """Test a nested non-list payload never gets pagination."""
        result = normalize({"success": True, "data": {"data": {"id": 1}, "total": 5}})

        assert result.payload == {"id": 1}
        assert result.pagination is None

    def test_list_without_pagination_metadata(self):
        """Test an envelope list without metadata has no pagination."""
        result = normalize({"success": True, "data": [1, 2, 3]})
        assert result.pagination is None

    def test_raw_list_and_object(self):
        """Test bare list and bare object pass through with a warning."""
        with capture_logs() as logs:
            raw_list = normalize([{"id": 1}])
            raw_object = normalize({"id": 1})

        assert raw_list.payload == [{"id": 1}]
        assert raw_object.payload == {"id": 1}
        assert raw_list.warnings and raw_object.warnings
        assert raw_list.error is None
        events = [log for log in logs if log["event"] == "response_not_enveloped"]
        assert [log["kind"] for log in events] == ["raw_list", "raw_object"]
        assert all(log["log_level"] == "warning" for log in events)

    def test_entity_with_data_member_not_unwrapped(self):
        """Test an entity carrying its own data field is kept whole."""
        report = {"id": "r1", "status": "completed", "data": {"kwh": 5}}
        result = normalize({"success": True, "data": report})

        assert result.payload == report
        assert result.pagination is None

    def test_wrapper_with_list_unwrapped(self):
        """Test a nested list is unwrapped even without pagination."""
        result = normalize({"success": True, "data": {"data": [{"id": 1}]}})

        assert result.payload == [{"id": 1}]

    def test_malformed_body_is_error(self):
        """Test an undecodable JSON body becomes an error result."""
        result = normalize(MalformedBody(content_type="application/json", reason="Expecting value"))

        assert result.error == INVALID_JSON_MESSAGE
        assert result.payload is None

    def test_blob_untouched(self):
        """Test binary payloads are returned as-is."""
        blob = BlobPayload(content=b"data", content_type="application/pdf")
        result = normalize(blob)

        assert result.payload is blob
        assert result.kind == ResponseKind.BLOB

    def test_none_is_error(self):
        """Test a missing body is an explicit error."""
        result = normalize(None)
        assert result.error == NO_DATA_MESSAGE

    def test_unrecognized_scalar_warns(self):
        """Test scalars fall back to payload with a warning."""
        result = normalize("plain text")

        assert result.payload == "plain text"
        assert result.error is None
        assert result.warnings

    def test_malformed_input_never_raises(self):
        """Test processing failures become error results."""
        result = normalize(ExplodingMapping(success=True))

        assert result.error is not None
        assert result.error.startswith("Response processing failed")


class TestHelpers:
    """Tests for decoding and diagnostic helpers."""

    def test_as_list(self):
        """Test payload coercion for list endpoints."""
        assert as_list(normalize({"success": True, "data": {"id": 1}})) == [{"id": 1}]
        assert as_list(normalize({"success": False})) == []
        assert as_list(normalize([1])) == [1]

    @pytest.mark.parametrize(
        "header,expected",
        [
            ('attachment; filename="report-42.pdf"', "report-42.pdf"),
            ("attachment; filename=energy.xlsx", "energy.xlsx"),
            ("inline", None),
            (None, None),
        ],
    )
    def test_parse_content_disposition(self, header, expected):
        """Test filename extraction from Content-Disposition."""
        assert parse_content_disposition(header) == expected

    def test_decode_json(self):
        """Test JSON bodies are parsed."""
        response = httpx.Response(200, json={"success": True, "data": []})
        assert decode_body(response) == {"success": True, "data": []}

    def test_decode_empty(self):
        """Test empty bodies decode to None."""
        assert decode_body(httpx.Response(204)) is None

    def test_decode_binary(self):
        """Test binary bodies become BlobPayload with metadata."""
        response = httpx.Response(
            200,
            content=b"%PDF",
            headers={
                "content-type": "application/pdf",
                "content-disposition": 'attachment; filename="r.pdf"',
            },
        )

        blob = decode_body(response)

        assert isinstance(blob, BlobPayload)
        assert blob.filename == "r.pdf"
        assert blob.content_type == "application/pdf"
        assert blob.size == 4

    def test_validate_response_structure(self):
        """Test structural diagnostics."""
        assert validate_response_structure({"success": True, "data": {"id": 1}})["is_valid"] is True

        report = validate_response_structure(None)
        assert report["is_valid"] is False
        assert report["response_type"] == "empty"

    def test_validate_envelope_fields(self):
        """Test envelope members with the wrong types are reported."""
        report = validate_response_structure({"success": False, "message": ["bad"]})

        assert report["is_valid"] is False
        assert report["response_type"] == "envelope"
        assert any(issue.startswith("message") for issue in report["issues"])

        assert validate_response_structure({"success": False, "message": "nope"})["is_valid"] is True

    def test_decode_invalid_json(self):
        """Test JSON-typed garbage decodes to a MalformedBody."""
        response = httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})

        body = decode_body(response)

        assert isinstance(body, MalformedBody)
        assert normalize(body).error == INVALID_JSON_MESSAGE
