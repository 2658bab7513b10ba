"""Pydantic schemas for request payloads, responses and token identities."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema that reads ORM objects and speaks camelCase JSON."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def dump(self) -> dict[str, Any]:
        """Return a JSON-ready dict keyed by the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


class Envelope(BaseModel):
    """Uniform body of every API response."""

    errors: Optional[List[str]] = None
    message: str
    data: Any = None


class Identity(CamelModel):
    """Claims carried by access and refresh tokens."""

    user_id: str
    name: str
    email: str


class UserCreate(CamelModel):
    """Validated registration payload."""

    name: str
    email: str
    password: str


class UserOut(CamelModel):
    """Response schema for user data."""

    user_id: str
    name: str
    email: str
    is_active: bool
    expire_time: Optional[datetime] = None


class AddressCreate(CamelModel):
    """Validated address payload."""

    address_type: str
    street: str
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class AddressOut(AddressCreate):
    """Schema for returning an address with its keys."""

    address_id: int
    contact_id: int


class ContactCreate(CamelModel):
    """Validated contact payload, without nested addresses."""

    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ContactOut(ContactCreate):
    """Schema for returning a contact with its addresses."""

    contact_id: int
    user_id: str
    addresses: List[AddressOut] = Field(
        default_factory=list,
        validation_alias=AliasChoices("Addresses", "addresses"),
        serialization_alias="Addresses",
    )
