import os
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, Header

from eventbook.exceptions import AuthenticationError, NotOwnerError
from eventbook.models.user import User, UserRole
from eventbook.seat_map import InMemorySeatMapStore, SeatMapStore

# Load environment variables
load_dotenv()

_store: Optional[SeatMapStore] = None


def create_store(backend: Optional[str] = None) -> SeatMapStore:
    """Build the seat map store selected by STORE_BACKEND (dynamodb or memory)"""
    backend = (backend or os.getenv("STORE_BACKEND", "dynamodb")).lower()
    if backend == "memory":
        return InMemorySeatMapStore()
    if backend == "dynamodb":
        from eventbook.database import db_client
        from eventbook.dynamo_seat_map import DynamoSeatMapStore
        return DynamoSeatMapStore(db_client)
    raise ValueError(f"Unknown STORE_BACKEND '{backend}', expected 'dynamodb' or 'memory'")


def get_store() -> SeatMapStore:
    global _store
    if _store is None:
        _store = create_store()
    return _store


def get_admin_emails() -> List[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return [email.strip().lower() for email in raw.split(",") if email.strip()]


def role_for_email(email: str) -> UserRole:
    return UserRole.ADMIN if email.strip().lower() in get_admin_emails() else UserRole.USER


def get_current_user(
    authorization: Optional[str] = Header(None),
    store: SeatMapStore = Depends(get_store),
) -> User:
    """Resolve the bearer token in the Authorization header to a user"""
    if not authorization:
        raise AuthenticationError("Authentication required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")

    user = store.get_user_by_token(token.strip())
    if user is None:
        raise AuthenticationError("Invalid or expired token")
    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise NotOwnerError("Administrator access required")
    return user
