from typing import Literal

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=60)
    role: Literal["user", "moderator", "admin", "super_admin"] = "user"


class UserBootstrapOut(BaseModel):
    user_id: str
    username: str
    role: str
    api_key: str


class MeOut(BaseModel):
    user_id: str
    role: str
    api_key_id: str
