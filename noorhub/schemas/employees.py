from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator


class EmployeeCreate(BaseModel):
    name: str
    phone: str
    password: str
    role: str
    email: Optional[EmailStr] = None
    status: Optional[str] = "Active"
    profile_image: Optional[str] = None

    @field_validator('email', 'profile_image', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator('email', 'password', 'profile_image', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator('email', 'password', 'profile_image', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None
