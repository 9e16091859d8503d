"""Input validation and sanitization for user-supplied thoughts and uploads."""
import logging
import os
import re
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)

MAX_THOUGHT_LENGTH = 10000
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_FILE_CONTENT_LENGTH = 50000
MAX_FILENAME_LENGTH = 255
MAX_ERROR_MESSAGE_LENGTH = 200

ALLOWED_FILE_TYPES = ('text/plain', 'text/markdown', 'application/json', 'text/csv')
ALLOWED_FILE_EXTENSIONS = ('.txt', '.md', '.json', '.csv')

GENERIC_ERROR_MESSAGE = 'A technical error occurred. Please try again later.'

_SCRIPT_TAG = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.IGNORECASE)
_EVENT_HANDLER = re.compile(r'\son\w+\s*=\s*["\'][^"\']*["\']', re.IGNORECASE)
_JAVASCRIPT_URL = re.compile(r'javascript:', re.IGNORECASE)
_NON_IMAGE_DATA_URL = re.compile(r'data:(?!image/)[^;,]+[;,]', re.IGNORECASE)

_SENSITIVE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'database', r'sql', r'postgres', r'supabase', r'connection', r'timeout',
        r'internal server', r'stack trace', r'file not found', r'permission denied',
    )
]


class ValidationResult(NamedTuple):
    is_valid: bool
    content: str = ''
    error: Optional[str] = None


def sanitize_input(text: str) -> str:
    if not text:
        return ''

    text = _SCRIPT_TAG.sub('', text)
    text = _EVENT_HANDLER.sub('', text)
    text = _JAVASCRIPT_URL.sub('', text)
    text = _NON_IMAGE_DATA_URL.sub('', text)
    return text[:MAX_THOUGHT_LENGTH]


def validate_file_upload(filename: str, size: int, content_type: Optional[str] = None) -> ValidationResult:
    if size > MAX_FILE_SIZE:
        return ValidationResult(
            False, error=f"File size exceeds limit of {MAX_FILE_SIZE // (1024 * 1024)}MB"
        )

    if len(filename) > MAX_FILENAME_LENGTH:
        return ValidationResult(False, error='Filename is too long')

    extension = os.path.splitext(filename)[1].lower()
    if extension not in ALLOWED_FILE_EXTENSIONS:
        return ValidationResult(
            False, error=f"File type not allowed. Supported: {', '.join(ALLOWED_FILE_EXTENSIONS)}"
        )

    if content_type and content_type.split(';')[0].strip() not in ALLOWED_FILE_TYPES:
        return ValidationResult(False, error='File type not supported')

    return ValidationResult(True)


def validate_file_content(content: str) -> ValidationResult:
    if not content.strip():
        return ValidationResult(False, error='File appears to be empty')

    if len(content) > MAX_FILE_CONTENT_LENGTH:
        return ValidationResult(
            False, error=f"File content exceeds limit of {MAX_FILE_CONTENT_LENGTH} characters"
        )

    return ValidationResult(True, content=sanitize_input(content))


def sanitize_error_message(error: Any) -> str:
    """Turn an exception (or message) into something safe to show a user."""
    if not error:
        return 'An unexpected error occurred'

    message = getattr(error, 'message', None) or str(error)
    if any(pattern.search(message) for pattern in _SENSITIVE_PATTERNS):
        logger.debug(f"Masked sensitive error message: {message}")
        return GENERIC_ERROR_MESSAGE

    return sanitize_input(message)[:MAX_ERROR_MESSAGE_LENGTH]
