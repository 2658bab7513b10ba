"""Contact management routes for the Contacts API."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_identity
from .database import get_db, transaction
from .errors import ApiError, envelope, tag_errors
from .validation import ValidationResult, validate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])

CONTACT_RULES = {
    "firstName": "required",
    "lastName": "",
    "email": "isEmail",
    "phone": "",
}
ADDRESS_RULES = {
    "addressType": "required",
    "street": "required",
    "city": "",
    "province": "",
    "country": "",
    "zipCode": "",
}


def validate_address(item: Any) -> ValidationResult:
    """Validate one submitted address, tolerating non-object entries."""
    if not isinstance(item, dict):
        return ValidationResult(message=["Address must be an object"])
    return validate(ADDRESS_RULES, item)


def not_found() -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, ["Contact not found"], "Contact Failed")


@router.post("", status_code=status.HTTP_201_CREATED)
@tag_errors("contacts:create_contact")
def create_contact(
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """
    Create a contact and all of its addresses as one unit.

    Every validation error of the contact and of each address is reported
    together. Either the contact and every address are stored, or nothing
    is.

    Args:
        payload (dict): Contact fields with an optional ``Addresses`` list.
        db (Session): Database session.
        identity (Identity): Authenticated caller, who becomes the owner.

    Raises:
        ApiError: 400 with the aggregated errors when validation fails, or
            when a row could not be persisted.

    Returns:
        JSONResponse: 201 envelope with the contact and its ``Addresses``.
    """
    contact_fields = dict(payload or {})
    raw_addresses = contact_fields.pop("Addresses", None)

    contact_result = validate(CONTACT_RULES, contact_fields)
    errors = list(contact_result.message)

    if raw_addresses is None:
        raw_addresses = []
    elif not isinstance(raw_addresses, list):
        errors.append("Addresses must be a list")
        raw_addresses = []

    address_results = [validate_address(item) for item in raw_addresses]
    for result in address_results:
        errors.extend(result.message)

    prepared = {
        **contact_result.data,
        "userId": identity.user_id,
        "Addresses": [result.data for result in address_results],
    }
    if errors:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            errors,
            "Create Contact failed due to validation errors",
            data=prepared,
        )

    with transaction(db):
        contact = crud.create_contact(
            db,
            schemas.ContactCreate.model_validate(contact_result.data),
            identity.user_id,
        )
        addresses = crud.create_addresses(
            db,
            [schemas.AddressCreate.model_validate(r.data) for r in address_results],
            contact.contact_id,
        )
        if contact.contact_id is None or any(a.address_id is None for a in addresses):
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                ["Failed to create contact or address"],
                "Create Contact failed",
                data=prepared,
            )

    logger.info(
        "User %s created contact %s with %d addresses",
        identity.user_id,
        contact.contact_id,
        len(addresses),
    )
    return envelope(
        status.HTTP_201_CREATED,
        "Contact created successfully",
        data=schemas.ContactOut.model_validate(contact).dump(),
        errors=[],
    )


@router.get("")
@tag_errors("contacts:list_contacts")
def list_contacts(
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """Return the caller's contacts with their addresses."""
    contacts = [
        schemas.ContactOut.model_validate(c).dump()
        for c in crud.get_contacts(db, identity.user_id)
    ]
    return envelope(status.HTTP_200_OK, "Contacts retrieved", data=contacts, errors=[])


@router.get("/{contact_id}")
@tag_errors("contacts:get_contact")
def get_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """
    Retrieve a single contact of the caller.

    Raises:
        ApiError: 404 if the contact does not exist or belongs to someone else.
    """
    found = crud.get_contact(db, contact_id, identity.user_id)
    if isinstance(found, crud.NotFound):
        raise not_found()
    return envelope(
        status.HTTP_200_OK,
        "Contact retrieved",
        data=schemas.ContactOut.model_validate(found.value).dump(),
        errors=[],
    )


@router.delete("/{contact_id}")
@tag_errors("contacts:delete_contact")
def remove_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """Delete one of the caller's contacts together with its addresses."""
    found = crud.get_contact(db, contact_id, identity.user_id)
    if isinstance(found, crud.NotFound):
        raise not_found()

    with transaction(db):
        crud.delete_contact(db, found.value)

    return envelope(status.HTTP_200_OK, "Contact deleted successfully", errors=[])
