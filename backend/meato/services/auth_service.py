# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Account creation and credential checks.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Shop, User
from ..permissions import Actor, Role
from ..time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, fields={"password": message})


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes verify as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    role: Role = Role.USER,
    phone: str | None = None,
    shop_id: int | None = None,
) -> User:
    """
    Create an account with a bcrypt-hashed password.

    Raises:
        ValidationError: missing name, malformed e-mail, weak password
        Conflict: e-mail or phone already registered
        NotFound: shop_id does not exist
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()
    phone = (phone or "").strip() or None

    fields = {}
    if not name:
        fields["name"] = "is required"
    if not EMAIL_PATTERN.match(email):
        fields["email"] = "must be a valid e-mail address"
    if fields:
        raise ValidationError("Invalid account details", fields=fields)

    existing = db.session.query(User).filter(
        db.or_(User.email == email, User.phone == phone) if phone else User.email == email
    ).first()
    if existing:
        raise Conflict("E-mail or phone already registered")

    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise NotFound("Shop not found")

    user = User(
        name=name,
        email=email,
        phone=phone,
        role=role.value,
        password_hash=hash_password(password or ""),
        franchise_id=shop_id,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate_credentials(identifier: str, password: str) -> User | None:
    """
    Authenticate by e-mail or phone.

    Returns the User when credentials are valid and the account is active,
    None otherwise. Updates last_login_at on success.
    """
    identifier = (identifier or "").strip()
    user = db.session.query(User).filter(
        db.or_(User.email == identifier.lower(), User.phone == identifier),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def register(name: str, email: str, password: str, phone: str | None = None) -> User:
    """Public self-registration; always creates a customer account."""
    return create_user(name=name, email=email, password=password, role=Role.USER, phone=phone)


# Roles each administrator role may hand out
STAFF_ROLES_GRANTABLE = {
    Role.SHOP_ADMIN: {Role.DELIVERY_PERSON},
    Role.ADMIN: {Role.DELIVERY_PERSON, Role.SHOP_ADMIN},
    Role.SUPER_ADMIN: {Role.DELIVERY_PERSON, Role.SHOP_ADMIN, Role.ADMIN},
}


def create_staff_user(actor: Actor, payload: dict) -> User:
    """
    Create a delivery person or administrator on behalf of an admin.

    Shop admins can only add delivery persons, always bound to their own shop.
    """
    try:
        role = Role.parse(payload.get("role") or Role.DELIVERY_PERSON.value)
    except ValueError:
        raise ValidationError("Unknown role", fields={"role": "is not a valid role"})

    if role not in STAFF_ROLES_GRANTABLE.get(actor.role, set()):
        raise Forbidden(f"{actor.role.value} cannot create {role.value} accounts")

    shop_id = payload.get("shop_id")
    if actor.role == Role.SHOP_ADMIN:
        shop_id = actor.shop_id
    elif shop_id is not None:
        try:
            shop_id = int(shop_id)
        except (TypeError, ValueError):
            raise ValidationError("shop_id must be an integer", fields={"shop_id": "must be an integer"})

    return create_user(
        name=payload.get("name"),
        email=payload.get("email"),
        password=payload.get("password") or "",
        role=role,
        phone=payload.get("phone"),
        shop_id=shop_id,
    )
