"""
Row validation: one raw row in, one Contact out (or a ValidationError).
"""
import re
from typing import Optional

import pydantic
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from ...setup.logging import logger
from ..exceptions import ValidationError
from ..schemas import EMAIL_MAX_LENGTH, NAME_MAX_LENGTH, ColumnMapping, Contact, ImportState, RejectedRow
from .source import RawRow

# Absence is reported before any format, length or content problem
PRESENCE_ERRORS = ("required", "string_too_short")


def _from_context(info: ValidationInfo, key: str):
    return (info.context or {}).get(key)


class ContactInput(BaseModel):
    """
    Contact fields of one input row.

    Validation context (optional):
        denylist: compiled pattern of content that must never reach a statement
        max_field_length: bound for the name fields, tighter than the column width
    """

    email: EmailStr
    first_name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    last_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        email = (v or "").strip().lower()
        if not email:
            raise PydanticCustomError("required", "email is required")
        if len(email) > EMAIL_MAX_LENGTH:
            raise PydanticCustomError(
                "string_too_long", "email must be at most {max_length} characters",
                {"max_length": EMAIL_MAX_LENGTH},
            )
        return email

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, v, info: ValidationInfo):
        value = (v or "").strip()
        if not value and info.field_name == "last_name":
            return None
        return value

    @field_validator("first_name", "last_name")
    @classmethod
    def check_configured_length(cls, v, info: ValidationInfo):
        limit = _from_context(info, "max_field_length")
        if v is not None and limit is not None and len(v) > limit:
            raise PydanticCustomError(
                "string_too_long", "{field} must be at most {max_length} characters",
                {"field": info.field_name, "max_length": limit},
            )
        return v

    @field_validator("email", "first_name", "last_name")
    @classmethod
    def reject_unsafe_content(cls, v, info: ValidationInfo):
        denylist = _from_context(info, "denylist")
        if v is not None and denylist is not None and denylist.search(v):
            raise PydanticCustomError(
                "unsafe_value", "{field} contains potentially unsafe characters", {"field": info.field_name}
            )
        return v


class RecordValidator:
    """
    Validates raw rows against a resolved ColumnMapping.

    The row width is checked here; field presence, email format, length
    bounds, normalization and the SQL denylist are enforced by ContactInput.
    """

    def __init__(self, mapping: ColumnMapping, denylist_pattern: str,
                 max_field_length: int = NAME_MAX_LENGTH):
        self.mapping = mapping
        self.max_field_length = max_field_length
        self._context = {
            "denylist": re.compile(denylist_pattern, re.IGNORECASE),
            "max_field_length": max_field_length,
        }

    def _extract(self, row: RawRow, role: str) -> Optional[str]:
        position = self.mapping.position(role)
        if position is None or position >= len(row.fields):
            return None
        return row.fields[position]

    def validate(self, row: RawRow) -> Contact:
        if len(row.fields) != self.mapping.width:
            raise ValidationError(
                "row", f"expected {self.mapping.width} fields, found {len(row.fields)}"
            )

        data = {role: self._extract(row, role) for role in ("email", "first_name", "last_name")}
        try:
            parsed = ContactInput.model_validate(data, context=self._context)
        except pydantic.ValidationError as e:
            raise self._rejection(e) from None
        return Contact(email=parsed.email, first_name=parsed.first_name, last_name=parsed.last_name)

    @staticmethod
    def _rejection(exc: pydantic.ValidationError) -> ValidationError:
        # sorted() is stable: field order is kept within each group
        errors = sorted(exc.errors(), key=lambda err: err["type"] not in PRESENCE_ERRORS)
        first = errors[0]
        field = str(first["loc"][0]) if first["loc"] else "row"
        if first["type"] in PRESENCE_ERRORS:
            return ValidationError(field, f"{field} is required")
        return ValidationError(field, first["msg"])


class RejectionSampler:
    """
    Volume control for rejection diagnostics.

    The first `detail_cap` rejections are kept and logged in full; afterwards
    only a summary line is logged every `log_interval` rejections.
    """

    def __init__(self, detail_cap: int = 10, log_interval: int = 100):
        self.detail_cap = detail_cap
        self.log_interval = log_interval
        self.detailed = 0

    def observe(self, row: RawRow, error: ValidationError, state: ImportState) -> Optional[RejectedRow]:
        """
        Record a rejection; `state` already counts it.

        Returns:
            The retained detail, or None once the cap is reached.
        """
        detail = None
        if self.detailed < self.detail_cap:
            detail = RejectedRow(row_number=row.number, field=error.field, reason=error.reason)
            self.detailed += 1
            logger.warning(f"[Validator] Row {row.number} rejected: {error}")

        if state.invalid_rows % self.log_interval == 0:
            logger.warning(
                f"[Validator] {state.invalid_rows} validation errors out of {state.total_rows} total rows"
            )
        return detail
