"""
Unit tests for document validation.
"""

import pytest

from jsonstage.ingest.validator import DocumentValidator, is_empty


class TestDocumentValidator:
    """Tests for DocumentValidator."""

    @pytest.fixture
    def validator(self):
        return DocumentValidator()

    def test_valid_payload(self, validator):
        result = validator.validate_payload('{"entry": {"id": "4HHB"}}')

        assert result.valid
        assert result.document == {"entry": {"id": "4HHB"}}
        assert result.size_bytes == 25

    def test_envelope_unwrapped(self, validator):
        result = validator.validate_payload(b'{"data": {"entry": {"id": "4HHB"}}}')

        assert result.valid
        assert result.unwrapped_envelope
        assert result.document == {"entry": {"id": "4HHB"}}

    def test_envelope_kept_when_disabled(self):
        validator = DocumentValidator(unwrap_data_envelope=False)
        result = validator.validate_document({"data": {"a": 1}})

        assert result.document == {"data": {"a": 1}}
        assert not result.unwrapped_envelope

    def test_invalid_json(self, validator):
        result = validator.validate_payload("{not json")

        assert not result.valid
        assert result.error_type == "format_error"

    def test_size_limit(self):
        result = DocumentValidator(max_size=10).validate_payload('{"entry": "long value"}')

        assert not result.valid
        assert result.error_type == "size_limit"

    @pytest.mark.parametrize("document", [None, {}, [], ""])
    def test_empty_documents(self, validator, document):
        result = validator.validate_document(document)

        assert not result.valid
        assert result.error_type == "empty_document"

    @pytest.mark.parametrize("document", [{"entry": None}, [0], 0, False, "text"])
    def test_stageable_documents(self, validator, document):
        assert validator.validate_document(document).valid

    def test_is_empty(self):
        assert is_empty(None)
        assert is_empty({})
        assert not is_empty(0)
        assert not is_empty({"a": None})


class TestEnvelope:
    """Tests for GraphQL envelope handling."""

    def test_empty_envelope_rejected(self):
        result = DocumentValidator().validate_document({"data": {}})

        assert result.unwrapped_envelope
        assert result.error_type == "empty_document"

    def test_null_envelope_kept(self):
        result = DocumentValidator().validate_document({"data": None})

        assert result.valid
        assert not result.unwrapped_envelope
