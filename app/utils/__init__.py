from app.utils.file_validator import (
    extension_for,
    is_pdf,
    sanitize_filename,
    sniff_content_type,
    validate_upload,
)

__all__ = [
    "extension_for",
    "is_pdf",
    "sanitize_filename",
    "sniff_content_type",
    "validate_upload",
]
