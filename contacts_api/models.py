"""Database models for the Contacts API.

This module defines SQLAlchemy ORM models used by the application.
"""

import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from .database import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    SQLAlchemy model representing an application user.

    A user starts out pending (``is_active`` false, ``expire_time`` set to
    the end of the activation window) and becomes active once the
    activation link is followed, at which point ``expire_time`` is cleared.
    """

    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=_new_user_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    expire_time = Column(DateTime, nullable=True)

    #: List of contacts owned by the user
    contacts = relationship(
        "Contact",
        back_populates="owner",
        cascade="all, delete-orphan",
    )


class Contact(Base):
    """
    SQLAlchemy model representing a contact entry.

    Each contact belongs to exactly one user and owns its addresses.
    """

    __tablename__ = "contacts"

    contact_id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False, index=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    #: Identifier of the owning user
    user_id = Column(
        String(36),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    #: Reference to the owning User object
    owner = relationship("User", back_populates="contacts")

    #: Addresses that belong to this contact
    addresses = relationship(
        "Address",
        back_populates="contact",
        cascade="all, delete-orphan",
        order_by="Address.address_id",
    )


class Address(Base):
    """
    SQLAlchemy model representing a postal address of a contact.

    An address cannot exist without its parent contact.
    """

    __tablename__ = "addresses"

    address_id = Column(Integer, primary_key=True, index=True)
    address_type = Column(String(50), nullable=False)
    street = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    province = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)

    contact_id = Column(
        Integer,
        ForeignKey("contacts.contact_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    contact = relationship("Contact", back_populates="addresses")
