"""
Input validation and sanitization utilities.
Every failure raises ValidationError naming the offending field.
"""

from enum import Enum
from typing import Any, Optional, Type, TypeVar

from shared_utils.constants import Defaults
from shared_utils.error_handler import ValidationError


E = TypeVar("E", bound=Enum)


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_non_empty_string(value: Any, field_name: str) -> str:
        """Validate non-empty string.

        Args:
            value: String to validate
            field_name: Name of field for error messages

        Returns:
            Validated, stripped string

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            raise ValidationError(f"{field_name} is required", field=field_name)

        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string", field=field_name)

        if not value.strip():
            raise ValidationError(f"{field_name} is required", field=field_name)

        return value.strip()

    @staticmethod
    def validate_choice(value: Any, enum_cls: Type[E], field_name: str) -> E:
        """Coerce *value* into a member of *enum_cls*.

        Accepts an existing member or its string value (case-insensitive).

        Raises:
            ValidationError: If the value is missing or not one of the members.
        """
        if isinstance(value, enum_cls):
            return value

        allowed = [member.value for member in enum_cls]
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                f"{field_name} is required. Must be one of: {', '.join(allowed)}",
                field=field_name,
                context={"allowed": allowed},
            )
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid {field_name}. Must be one of: {', '.join(allowed)}",
                field=field_name,
                context={"allowed": allowed, "received": value},
            ) from None

    @staticmethod
    def validate_optional_text(
        value: Any,
        field_name: str,
        max_length: int = Defaults.MAX_NOTES_LENGTH,
    ) -> Optional[str]:
        """Validate optional free text; blank collapses to None."""
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string", field=field_name)

        text = value.strip()
        if len(text) > max_length:
            raise ValidationError(
                f"{field_name} too long (max {max_length} characters)",
                field=field_name,
            )
        return text or None
