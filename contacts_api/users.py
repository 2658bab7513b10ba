"""User account routes: registration, activation, login and maintenance."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi_limiter.depends import RateLimiter
from jose import JWTError
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import (
    bearer_token,
    create_access_token,
    create_refresh_token,
    generate_password,
    get_current_identity,
    get_password_hash,
    verify_password,
    verify_refresh_token,
)
from .core import get_settings
from .database import get_db, transaction
from .errors import ApiError, envelope, tag_errors
from .models import User
from .notifications import Mailer, get_mailer
from .validation import validate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])
settings = get_settings()

#: Applied to login and forgot-password.
rate_limiter = RateLimiter(
    times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
)

REGISTER_RULES = {
    "name": "required",
    "email": "required,isEmail",
    "password": "required,isStrongPassword",
    "confirmPassword": "required",
}
LOGIN_RULES = {"email": "required,isEmail", "password": "required"}
FORGOT_PASSWORD_RULES = {"email": "required,isEmail"}


def rejected(
    errors: list[str], operation: str, code: int = status.HTTP_400_BAD_REQUEST
) -> ApiError:
    return ApiError(code, errors, f"{operation} Failed")


def check_password_confirmation(data: dict[str, Any], messages: list[str]) -> None:
    if data.get("password") != data.get("confirmPassword"):
        messages.append("Password does not match")


def find_own_account(
    db: Session, identity: schemas.Identity, user_id: str
) -> crud.Lookup[User]:
    """Look up ``user_id`` only when it is the caller's own account."""
    if identity.user_id != user_id:
        return crud.NotFound()
    return crud.get_user_by_id(db, user_id)


def token_response(user: User, message: str):
    identity = schemas.Identity.model_validate(user)
    return envelope(
        status.HTTP_200_OK,
        message,
        data=identity.dump(),
        errors=[],
        accessToken=create_access_token(identity),
        refreshToken=create_refresh_token(identity),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
@tag_errors("users:register")
async def register(
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Register a pending user and email the activation link.

    An expired pending registration for the same email is replaced. The
    new row is only kept if the activation email was sent.

    Raises:
        ApiError: 400 on validation errors or when the email is active or
            still pending; 500 when the activation email cannot be sent.
    """
    result = validate(REGISTER_RULES, payload)
    check_password_confirmation(result.data, result.message)
    if not result.ok:
        raise rejected(result.message, "Register")

    existing = crud.get_user_by_email(db, result.data["email"])
    if isinstance(existing, crud.Found):
        if existing.value.is_active:
            raise rejected(["Email already activated"], "Register")
        if crud.is_pending_unexpired(existing.value):
            raise rejected(
                ["Email already registered, please check your email"], "Register"
            )

    user_in = schemas.UserCreate.model_validate(result.data)
    with transaction(db):
        if isinstance(existing, crud.Found):
            logger.info("Replacing expired registration for %s", user_in.email)
            crud.delete_user(db, existing.value)
        user = crud.create_pending_user(
            db,
            user_in,
            get_password_hash(user_in.password),
            settings.ACTIVATION_EXPIRE_MINUTES,
        )
        if not await mailer.send_activation(user.email, user.user_id):
            raise rejected(
                ["Send email failed"], "Register", status.HTTP_500_INTERNAL_SERVER_ERROR
            )

    logger.info("Registered pending user %s", user.user_id)
    return envelope(
        status.HTTP_201_CREATED,
        "User created, please check your email",
        data=schemas.UserOut.model_validate(user).dump(),
    )


@router.get("/activate/{user_id}")
@tag_errors("users:activate")
def activate(user_id: str, db: Session = Depends(get_db)):
    """
    Activate a pending user from the emailed link.

    Wrong ids, already active users and expired registrations all get the
    same 400 response.
    """
    found = crud.get_pending_user(db, user_id)
    if isinstance(found, crud.NotFound):
        raise rejected(["User not found or expired"], "Activate User")

    with transaction(db):
        user = crud.activate_user(db, found.value)

    logger.info("Activated user %s", user_id)
    return envelope(
        status.HTTP_200_OK,
        "User activated successfully",
        data={"name": user.name, "email": user.email},
        errors=[],
    )


@router.get("", dependencies=[Depends(get_current_identity)])
@tag_errors("users:list")
def list_users(db: Session = Depends(get_db)):
    """Return all users without their password hashes."""
    users = [schemas.UserOut.model_validate(u).dump() for u in crud.get_users(db)]
    return envelope(status.HTTP_200_OK, "Users retrieved", data=users, errors=[])


@router.post("/login", dependencies=[Depends(rate_limiter)])
@tag_errors("users:login")
def login(
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
):
    """
    Authenticate an active user and return an access/refresh token pair.

    Unknown emails, inactive accounts and wrong passwords share a single
    error message.
    """
    result = validate(LOGIN_RULES, payload)
    if not result.ok:
        raise rejected(result.message, "Login")

    found = crud.get_user_by_email(db, result.data["email"], active_only=True)
    if isinstance(found, crud.NotFound) or not verify_password(
        result.data["password"], found.value.password
    ):
        raise rejected(["Invalid email or password"], "Login")

    return token_response(found.value, "Login successfully")


@router.post("/refresh")
@tag_errors("users:refresh")
def refresh(request: Request, db: Session = Depends(get_db)):
    """Issue a new token pair from the refresh token in the Authorization header."""
    token = bearer_token(request)
    if token is None:
        raise rejected(["Refresh token not found"], "Refresh")

    try:
        identity = verify_refresh_token(token)
    except JWTError:
        identity = None
    if identity is None:
        raise rejected(["Invalid refresh token"], "Refresh")

    found = crud.get_user_by_email(db, identity.email, active_only=True)
    if isinstance(found, crud.NotFound):
        raise rejected(["User not found"], "Refresh")

    return token_response(found.value, "Refresh successfully")


@router.put("/{user_id}")
@tag_errors("users:update")
def update_user(
    user_id: str,
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """
    Update the name, email or password of a user.

    Only the fields present in the payload are validated and changed. A
    new password must be confirmed and is stored hashed. Callers can only
    update their own account; any other id is reported as not found.
    """
    payload = payload or {}
    rules: dict[str, str] = {}
    if payload.get("name") is not None:
        rules["name"] = "required"
    if payload.get("email") is not None:
        rules["email"] = "required,isEmail"
    if payload.get("password") is not None:
        rules["password"] = "required,isStrongPassword"
        rules["confirmPassword"] = "required"

    result = validate(rules, payload)
    if "password" in result.data:
        check_password_confirmation(result.data, result.message)
    if not result.ok:
        raise rejected(result.message, "Update")

    found = find_own_account(db, identity, user_id)
    if isinstance(found, crud.NotFound):
        raise rejected(["User not found"], "Update", status.HTTP_404_NOT_FOUND)
    user = found.value

    changes: dict[str, Any] = {}
    if "name" in result.data:
        changes["name"] = result.data["name"]
    if "email" in result.data and result.data["email"] != user.email:
        taken = crud.get_user_by_email(db, result.data["email"])
        if isinstance(taken, crud.Found):
            raise rejected(["Email already used"], "Update")
        changes["email"] = result.data["email"]
    if "password" in result.data:
        changes["password"] = get_password_hash(result.data["password"])

    with transaction(db):
        crud.update_user(db, user, changes)

    data = {
        key: value
        for key, value in result.data.items()
        if key not in ("password", "confirmPassword")
    }
    return envelope(
        status.HTTP_200_OK, "User updated successfully", data=data, errors=[]
    )


@router.delete("/{user_id}")
@tag_errors("users:delete")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity: schemas.Identity = Depends(get_current_identity),
):
    """Delete the caller's account together with its contacts and addresses."""
    found = find_own_account(db, identity, user_id)
    if isinstance(found, crud.NotFound):
        raise rejected(["User not found"], "Delete", status.HTTP_404_NOT_FOUND)

    with transaction(db):
        crud.delete_user(db, found.value)

    return envelope(status.HTTP_200_OK, "User deleted successfully", errors=[])


@router.post("/forgot-password", dependencies=[Depends(rate_limiter)])
@tag_errors("users:forgot_password")
async def forgot_password(
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """
    Replace a user's password with a random one and email it.

    The new password is only kept if the email was sent, so the user is
    never left with a password they did not receive.
    """
    result = validate(FORGOT_PASSWORD_RULES, payload)
    if not result.ok:
        raise rejected(result.message, "Forgot Password")

    found = crud.get_user_by_email(db, result.data["email"])
    if isinstance(found, crud.NotFound):
        raise rejected(["User not found"], "Forgot Password", status.HTTP_404_NOT_FOUND)
    user = found.value

    new_password = generate_password()
    with transaction(db):
        crud.update_user_password(db, user, get_password_hash(new_password))
        if not await mailer.send_password(user.email, new_password):
            raise rejected(["Email not sent"], "Forgot Password")

    logger.info("Reset password for user %s", user.user_id)
    return envelope(
        status.HTTP_200_OK,
        "Forgot Password success, please check your email",
        errors=[],
    )
