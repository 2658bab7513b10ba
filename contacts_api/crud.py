"""CRUD operations for users, contacts and addresses.

This module contains database interaction logic isolated from FastAPI
route handlers. Functions here only stage changes (``add``, ``delete``,
``flush``); committing or rolling back is decided by the caller's
:func:`contacts_api.database.transaction` scope. Single-row lookups return
:class:`Found` or :class:`NotFound` instead of ``None``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models, schemas

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup result holding the matching entity."""

    value: T


@dataclass(frozen=True)
class NotFound:
    """Lookup result for a missing entity."""


Lookup = Found[T] | NotFound


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _one(db: Session, stmt) -> Lookup:
    row = db.execute(stmt).scalar_one_or_none()
    return NotFound() if row is None else Found(row)


def get_user_by_email(
    db: Session, email: str, active_only: bool = False
) -> Lookup[models.User]:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email.
        active_only (bool): Only match activated users.

    Returns:
        Found[User] | NotFound: Lookup result.
    """
    stmt = select(models.User).where(models.User.email == email)
    if active_only:
        stmt = stmt.where(models.User.is_active.is_(True))
    return _one(db, stmt)


def get_user_by_id(db: Session, user_id: str) -> Lookup[models.User]:
    """Retrieve a user by primary key."""
    return _one(db, select(models.User).where(models.User.user_id == user_id))


def get_pending_user(db: Session, user_id: str) -> Lookup[models.User]:
    """
    Retrieve a user that can still be activated.

    Matches only inactive users whose activation window has not elapsed,
    so wrong ids, active users and expired registrations look the same.
    """
    return _one(
        db,
        select(models.User).where(
            models.User.user_id == user_id,
            models.User.is_active.is_(False),
            models.User.expire_time > utcnow(),
        ),
    )


def get_users(db: Session) -> list[models.User]:
    """Return every user ordered by name."""
    return list(db.scalars(select(models.User).order_by(models.User.name)).all())


def is_pending_unexpired(user: models.User) -> bool:
    """Whether ``user`` is awaiting activation inside its window."""
    return (
        not user.is_active
        and user.expire_time is not None
        and user.expire_time > utcnow()
    )


def create_pending_user(
    db: Session,
    user_in: schemas.UserCreate,
    hashed_password: str,
    activation_minutes: int,
) -> models.User:
    """
    Stage a new pending user and flush it so its identifier is assigned.

    Args:
        db (Session): Database session.
        user_in (UserCreate): Validated registration data.
        hashed_password (str): Securely hashed password.
        activation_minutes (int): Length of the activation window.

    Returns:
        User: The flushed, not yet committed user.
    """
    user = models.User(
        name=user_in.name,
        email=user_in.email,
        password=hashed_password,
        is_active=False,
        expire_time=utcnow() + timedelta(minutes=activation_minutes),
    )
    db.add(user)
    db.flush()
    return user


def activate_user(db: Session, user: models.User) -> models.User:
    """Mark a pending user active and clear its expiry."""
    user.is_active = True
    user.expire_time = None
    db.add(user)
    db.flush()
    return user


def update_user(db: Session, user: models.User, changes: dict) -> models.User:
    """
    Apply attribute changes to a user.

    Args:
        db (Session): Database session.
        user (User): Target user.
        changes (dict): Column name to new value; passwords must be hashed.

    Returns:
        User: Updated user instance.
    """
    for key, value in changes.items():
        setattr(user, key, value)
    db.add(user)
    db.flush()
    return user


def update_user_password(
    db: Session, user: models.User, hashed_password: str
) -> models.User:
    """Replace a user's hashed password."""
    return update_user(db, user, {"password": hashed_password})


def delete_user(db: Session, user: models.User) -> None:
    """Delete a user together with its contacts and their addresses."""
    db.delete(user)
    db.flush()


def create_contact(
    db: Session, contact_in: schemas.ContactCreate, user_id: str
) -> models.Contact:
    """
    Stage a contact owned by ``user_id`` and flush it to obtain its key.

    Args:
        db (Session): Database session.
        contact_in (ContactCreate): Validated contact data.
        user_id (str): Owner identifier.

    Returns:
        Contact: The flushed contact.
    """
    contact = models.Contact(**contact_in.model_dump(), user_id=user_id)
    db.add(contact)
    db.flush()
    return contact


def create_addresses(
    db: Session, addresses_in: list[schemas.AddressCreate], contact_id: int
) -> list[models.Address]:
    """
    Stage every address under ``contact_id`` and flush them together.

    Args:
        db (Session): Database session.
        addresses_in (list[AddressCreate]): Validated address data.
        contact_id (int): Parent contact identifier.

    Returns:
        list[Address]: The flushed addresses, in input order.
    """
    addresses = [
        models.Address(**address_in.model_dump(), contact_id=contact_id)
        for address_in in addresses_in
    ]
    db.add_all(addresses)
    db.flush()
    return addresses


def get_contact(db: Session, contact_id: int, user_id: str) -> Lookup[models.Contact]:
    """
    Retrieve a single contact owned by the given user.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.
        user_id (str): Contact owner.

    Returns:
        Found[Contact] | NotFound: Lookup result.
    """
    return _one(
        db,
        select(models.Contact).where(
            models.Contact.contact_id == contact_id,
            models.Contact.user_id == user_id,
        ),
    )


def get_contacts(db: Session, user_id: str) -> list[models.Contact]:
    """Retrieve all contacts of a user, oldest first."""
    stmt = (
        select(models.Contact)
        .options(selectinload(models.Contact.addresses))
        .where(models.Contact.user_id == user_id)
        .order_by(models.Contact.contact_id)
    )
    return list(db.scalars(stmt).all())


def delete_contact(db: Session, contact: models.Contact) -> None:
    """Delete a contact and its addresses."""
    db.delete(contact)
    db.flush()
