from sqlalchemy import Column, Integer, String, Identity
from sqlalchemy.orm import declarative_base

from ..core.schemas import EMAIL_MAX_LENGTH, NAME_MAX_LENGTH

MainBase = declarative_base()


class ContactModel(MainBase):
    """Persisted contact, unique by normalized email."""

    __tablename__ = "contacts"

    id = Column(Integer, Identity(always=False), nullable=False, unique=True)
    email = Column(String(EMAIL_MAX_LENGTH), primary_key=True)
    first_name = Column(String(NAME_MAX_LENGTH), nullable=False)
    last_name = Column(String(NAME_MAX_LENGTH), nullable=True)

    def __repr__(self):
        return f"ContactModel(email={self.email!r}, first_name={self.first_name!r}, last_name={self.last_name!r})"
