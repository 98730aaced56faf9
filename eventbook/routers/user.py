from fastapi import APIRouter, Depends
from loguru import logger

from eventbook.dependencies import get_current_user, get_store, role_for_email
from eventbook.exceptions import AuthenticationError
from eventbook.models.user import (AuthData, AuthResponse, User, UserData,
                                   UserLogin, UserRegister, UserResponse)
from eventbook.security import hash_password, verify_password
from eventbook.seat_map import SeatMapStore
from eventbook.utils import (generate_token, generate_user_id,
                             get_current_timestamp)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def normalize_email(email: str) -> str:
    return email.strip().lower()


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    registration: UserRegister,
    store: SeatMapStore = Depends(get_store),
):
    """Register a user and issue their bearer token"""
    email = normalize_email(registration.email)
    user = store.create_user(User(
        user_id=generate_user_id(),
        first_name=registration.first_name.strip(),
        last_name=registration.last_name.strip(),
        email=email,
        phone=registration.phone.strip(),
        role=role_for_email(email),
        token=generate_token(),
        password_hash=hash_password(registration.password),
        created_at=get_current_timestamp(),
    ))
    logger.info(f"User {user.user_id} registered with role {user.role.value}")
    return AuthResponse(data=AuthData(user=user, token=user.token))


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: UserLogin,
    store: SeatMapStore = Depends(get_store),
):
    """Exchange email and password for the user's bearer token"""
    user = store.get_user_by_email(normalize_email(credentials.email))
    if user is None or not user.password_hash or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Failed login for {normalize_email(credentials.email)}")
        raise AuthenticationError("Invalid email or password")
    logger.info(f"User {user.user_id} logged in")
    return AuthResponse(data=AuthData(user=user, token=user.token))


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """Get the authenticated user"""
    return UserResponse(data=UserData(user=user))
