from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from eventbook.models.event import CAMEL_CONFIG


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserRegister(BaseModel):
    model_config = CAMEL_CONFIG

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = ""
    password: str = Field(..., min_length=6, max_length=72)


class UserLogin(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class User(BaseModel):
    model_config = CAMEL_CONFIG

    user_id: str = Field(..., alias="_id")
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    role: UserRole = UserRole.USER
    token: Optional[str] = Field(None, exclude=True)
    password_hash: Optional[str] = Field(None, exclude=True)
    created_at: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserData(BaseModel):
    user: User


class UserResponse(BaseModel):
    success: bool = True
    data: UserData


class AuthData(BaseModel):
    user: User
    token: str


class AuthResponse(BaseModel):
    success: bool = True
    data: AuthData
