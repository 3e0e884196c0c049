from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginIn(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class LoginOut(BaseModel):
    success: bool
    username: str


class ChangePasswordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = None
    old_password: Optional[str] = Field(default=None, alias="oldPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class UserOut(BaseModel):
    username: str


class SuccessOut(BaseModel):
    success: bool
