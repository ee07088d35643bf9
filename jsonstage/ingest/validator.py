"""
Document validator for staging.

Validates incoming documents (raw JSON text or already-parsed values),
removes the GraphQL ``data`` envelope and provides structured validation
results for the staging orchestrator.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union


# Payload size limit for raw JSON text (in bytes)
MAX_JSON_SIZE = 50 * 1024 * 1024  # 50MB


@dataclass
class DocumentValidationResult:
    """Result of validating one document."""
    valid: bool
    document: Any = None
    size_bytes: int = 0
    unwrapped_envelope: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None  # e.g. "empty_document", "format_error"


def is_empty(value: Any) -> bool:
    """True for values that carry nothing to stage."""
    if value is None:
        return True
    if isinstance(value, (str, list, dict)) and len(value) == 0:
        return True
    return False


class DocumentValidator:
    """
    Validator for documents submitted for staging.

    Accepts JSON text or parsed values. Objects, arrays and scalars are all
    stageable; only missing or empty input is rejected.
    """

    def __init__(self, unwrap_data_envelope: bool = True, max_size: int = MAX_JSON_SIZE):
        """
        Initialize validator.

        Args:
            unwrap_data_envelope: Replace {"data": X} by X before staging
            max_size: Largest accepted JSON text in bytes
        """
        self.unwrap_data_envelope = unwrap_data_envelope
        self.max_size = max_size

    def validate_payload(self, payload: Union[str, bytes]) -> DocumentValidationResult:
        """
        Validate a JSON text payload.

        Args:
            payload: JSON string or UTF-8 bytes

        Returns:
            DocumentValidationResult with the parsed document when valid
        """
        raw = payload.encode("utf-8") if isinstance(payload, str) else payload
        size_bytes = len(raw)

        if size_bytes > self.max_size:
            return DocumentValidationResult(
                valid=False,
                size_bytes=size_bytes,
                error=f"JSON payload size {size_bytes} exceeds maximum {self.max_size} bytes",
                error_type="size_limit",
            )

        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return DocumentValidationResult(
                valid=False,
                size_bytes=size_bytes,
                error=f"Invalid JSON format: {e}",
                error_type="format_error",
            )

        result = self.validate_document(parsed)
        result.size_bytes = size_bytes
        return result

    def validate_document(self, document: Any) -> DocumentValidationResult:
        """
        Validate an already-parsed document.

        Args:
            document: Parsed JSON value

        Returns:
            DocumentValidationResult carrying the document to stage
        """
        unwrapped = False
        if self.unwrap_data_envelope and isinstance(document, dict):
            envelope = document.get("data")
            # Containers are unwrapped even when empty so {"data": {}} is rejected
            if isinstance(envelope, (dict, list)) or envelope:
                document = envelope
                unwrapped = True

        if is_empty(document):
            return DocumentValidationResult(
                valid=False,
                document=document,
                unwrapped_envelope=unwrapped,
                error="No data to stage: the document is empty",
                error_type="empty_document",
            )

        return DocumentValidationResult(
            valid=True,
            document=document,
            unwrapped_envelope=unwrapped,
        )
