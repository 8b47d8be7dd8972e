"""Per-document structural checks."""

from moon_verify.validation.structural import validate_document, validate_documents

__all__ = ["validate_document", "validate_documents"]
