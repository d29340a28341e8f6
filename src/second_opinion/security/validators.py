"""
Input Validators - Validation for input at system boundaries.

Parse at the boundary: the host's tool arguments, CLI options, and
endpoint overrides from the environment are validated here before they
reach the Coordinator or a provider adapter.
"""

import logging
import re
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = {"http", "https"}


class ValidationError(ValueError):
    """Raised when input validation fails. Contains a user-friendly message."""

    pass


def validate_not_empty(value: str | None, field_name: str = "input") -> str:
    """Validate that a string is not empty or whitespace-only."""
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")
    return value.strip()


def validate_length(
    value: str,
    field_name: str = "input",
    max_length: int = 100_000,
) -> str:
    if len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def validate_identifier(value: str, field_name: str = "identifier") -> str:
    """Validate that a string is a safe identifier (alphanumeric + underscore/hyphen)."""
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9_-]*$", value):
        raise ValidationError(
            f"{field_name} must start with a letter and contain only "
            f"letters, numbers, underscores, and hyphens"
        )
    return value


def validate_in_choices(value: str, choices: list[str], field_name: str = "value") -> str:
    """Validate that a value is one of the allowed choices."""
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_list_size(
    items: list,
    field_name: str = "list",
    max_items: int = 20,
) -> list:
    """Validate that a list does not exceed a maximum number of items."""
    if len(items) > max_items:
        raise ValidationError(
            f"{field_name} cannot have more than {max_items} items (got {len(items)})"
        )
    return items


def validate_endpoint(url: str, field_name: str = "endpoint") -> str:
    """
    Validate a provider endpoint override.

    Local proxies are allowed (endpoints are operator-supplied), but the
    scheme must be http/https and a hostname must be present.

    Raises:
        ValidationError: If the URL is malformed.
    """
    if not url or not url.strip():
        raise ValidationError(f"{field_name} cannot be empty")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        raise ValidationError(
            f"{field_name} must use http or https (got '{parsed.scheme}')"
        )
    if not parsed.hostname:
        raise ValidationError(f"{field_name} must include a hostname")

    logger.debug(f"[Validators] Endpoint validated: {parsed.scheme}://{parsed.hostname}")
    return url.strip().rstrip("/")
