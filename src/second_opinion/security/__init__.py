"""Security utilities -- agent output sanitization and boundary validation."""
from .prompt_guard import detect_injection_attempt, sanitize_for_prompt
from .validators import (
    ValidationError,
    validate_endpoint,
    validate_identifier,
    validate_in_choices,
    validate_length,
    validate_list_size,
    validate_not_empty,
)
