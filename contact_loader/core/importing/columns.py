"""
Header resolution: maps the logical contact fields to physical columns.
"""
from typing import Dict, Sequence, Tuple

from ..exceptions import MissingColumnsError
from ..schemas import ColumnMapping

COLUMN_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "email": ("email", "e-mail", "email_address", "emailaddress", "email address"),
    "first_name": ("first_name", "firstname", "first name", "first-name", "given_name", "given name"),
    "last_name": ("last_name", "lastname", "last name", "last-name", "surname", "family_name", "family name"),
}
REQUIRED_ROLES = ("email", "first_name")


def normalize_header(name: str) -> str:
    """Lowercase, trim, drop a UTF-8 BOM and collapse inner whitespace."""
    return " ".join(name.replace("\ufeff", "").strip().lower().split())


def resolve_columns(headers: Sequence[str]) -> ColumnMapping:
    """
    Resolve the header row into a ColumnMapping.

    The first header matching a role's synonym set wins. A missing optional
    role is not an error.

    Raises:
        MissingColumnsError: If email or first_name cannot be resolved.
    """
    resolved: Dict[str, Tuple[str, int]] = {}
    for position, header in enumerate(headers):
        normalized = normalize_header(header)
        for role, synonyms in COLUMN_SYNONYMS.items():
            if role not in resolved and normalized in synonyms:
                resolved[role] = (header, position)
                break

    missing = [role for role in REQUIRED_ROLES if role not in resolved]
    if missing:
        raise MissingColumnsError(missing, headers)

    last_name = resolved.get("last_name")
    return ColumnMapping(
        email=resolved["email"][0],
        first_name=resolved["first_name"][0],
        last_name=last_name[0] if last_name else None,
        positions={role: position for role, (_, position) in resolved.items()},
        width=len(headers),
    )
