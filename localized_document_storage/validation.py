"""
Write-time validation.

Two checks run on every create and update:

- scalar type checks while data is merged (``normalize_scalar``)
- required-field checks on the merged document, seen through the target
  locale with fallback (``RequiredFieldValidator``)

Required checks cover only what the call supplied: an update of one locale
is never rejected for required fields of other locales, nor for untouched
non-localized fields written earlier.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .exceptions import RequiredFieldMissingError, ValidationError
from .schema import BLOCK_TYPE_KEY, Field, FieldType

_TEXT_TYPES = (FieldType.TEXT, FieldType.TEXTAREA, FieldType.EMAIL)


def normalize_scalar(declared: Field, value: Any, path: str) -> Any:
    """Check a scalar value against its field type and return the stored form.

    Raises:
        ValidationError: The value does not fit the field type
    """
    if declared.type in _TEXT_TYPES:
        if not isinstance(value, str):
            raise ValidationError(path, "expected a string", repr(value))
        if declared.type is FieldType.EMAIL and value and "@" not in value:
            raise ValidationError(path, "expected an email address", value)
        return value

    if declared.type is FieldType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(path, "expected a number", repr(value))
        return value

    if declared.type is FieldType.CHECKBOX:
        if not isinstance(value, bool):
            raise ValidationError(path, "expected a boolean", repr(value))
        return value

    if declared.type is FieldType.SELECT:
        if not isinstance(value, str):
            raise ValidationError(path, "expected a string", repr(value))
        if declared.options and value not in declared.options:
            raise ValidationError(path, f"must be one of {declared.options}", value)
        return value

    if declared.type is FieldType.DATE:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if not isinstance(value, str):
            raise ValidationError(path, "expected an ISO date string", repr(value))
        return value

    return value


def is_missing(declared: Field, value: Any) -> bool:
    """Whether a resolved value fails a ``required`` constraint."""
    if value is None or value == "":
        return True
    if declared.type is FieldType.RELATIONSHIP and declared.has_many:
        return value == []
    return False


class RequiredFieldValidator:
    """Checks required fields of a document resolved for the target locale."""

    def validate(
        self,
        fields: list[Field],
        resolved: dict[str, Any],
        supplied: dict[str, Any] | None,
        locale: str,
        path: str = "",
    ) -> None:
        """Raise RequiredFieldMissingError for the first empty required field.

        Args:
            fields: Declared fields at this level
            resolved: Merged document resolved for ``locale`` with fallback
            supplied: Data passed by the caller; None checks every field
            locale: Target locale, reported in the error
            path: Dotted prefix for error messages
        """
        for declared in fields:
            if supplied is not None and declared.name not in supplied:
                continue

            value = resolved.get(declared.name)
            field_path = f"{path}{declared.name}"
            if declared.required and is_missing(declared, value):
                raise RequiredFieldMissingError(field_path, locale)

            if declared.type is FieldType.GROUP and isinstance(value, dict):
                nested = supplied.get(declared.name) if supplied is not None else None
                self.validate(
                    declared.fields,
                    value,
                    nested if isinstance(nested, dict) else None,
                    locale,
                    f"{field_path}.",
                )
            elif declared.has_rows and isinstance(value, list):
                # Supplied rows were merged with their stored counterparts, so
                # every row is checked in full.
                for index, row in enumerate(value):
                    if not isinstance(row, dict):
                        continue
                    if declared.type is FieldType.BLOCKS:
                        block = declared.block(row.get(BLOCK_TYPE_KEY))
                        row_fields = block.fields if block else []
                    else:
                        row_fields = declared.fields
                    self.validate(row_fields, row, None, locale, f"{field_path}.{index}.")
