from pydantic import BaseModel, ConfigDict, EmailStr, Field, AnyHttpUrl, field_validator
from typing import List, Literal, Optional
from datetime import date, datetime, time

from models import Role

# User schemas
class UserBase(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=100)

class UserSignup(UserBase):
    password: str = Field(min_length=6, max_length=72)

class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

class User(BaseModel):
    id: str
    email: str
    username: str
    role: Role
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class RoleUpdate(BaseModel):
    role: Role

class ActivationUpdate(BaseModel):
    is_active: bool

class RolePermissions(BaseModel):
    role: Role
    permissions: List[str]

    model_config = ConfigDict(from_attributes=True)

class RolePermissionsUpdate(BaseModel):
    permissions: List[str]

# Authentication schemas
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == "":
        return None
    return value

def _not_null(value):
    # Omit a field to leave it unchanged; null would clear a required column
    if value is None:
        raise ValueError("Field cannot be null")
    return value

# Profile schemas
class ProfileFields(BaseModel):
    firstname: Optional[str] = Field(default=None, max_length=100)
    lastname: Optional[str] = Field(default=None, max_length=100)
    middlename: Optional[str] = Field(default=None, max_length=100)
    about: Optional[str] = None
    occupation: Optional[str] = Field(default=None, max_length=200)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[Literal["Male", "Female", "Other"]] = None
    facebook_url: Optional[AnyHttpUrl] = None
    github_url: Optional[AnyHttpUrl] = None
    linkedin_url: Optional[AnyHttpUrl] = None
    twitter_url: Optional[AnyHttpUrl] = None
    street_number: Optional[str] = Field(default=None, max_length=50)
    street_address: Optional[str] = Field(default=None, max_length=500)
    post_code: Optional[str] = Field(default=None, max_length=50)
    county: Optional[str] = Field(default=None, max_length=100)

    model_config = ConfigDict(extra="ignore")

    @field_validator("firstname", "lastname", "middlename", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("facebook_url", "github_url", "linkedin_url", "twitter_url", mode="before")
    @classmethod
    def blank_url(cls, value):
        return _blank_to_none(value)

PROFILE_COLUMNS = ("firstname", "lastname", "middlename", "about", "occupation",
                   "phone_number", "date_of_birth", "gender")
SOCIALS_COLUMNS = ("facebook_url", "github_url", "linkedin_url", "twitter_url")
ADDRESS_COLUMNS = ("street_number", "street_address", "post_code", "county")

# Event schemas
class EventCreate(BaseModel):
    event_name: str = Field(min_length=1, max_length=300)
    event_date: date
    event_address: Optional[str] = None
    event_time: Optional[time] = None
    event_description: Optional[str] = None
    # Account id of the host; falls back to event_host_name when unknown
    event_host: Optional[str] = None
    event_host_name: Optional[str] = None

class EventUpdate(BaseModel):
    event_name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    event_date: Optional[date] = None
    event_address: Optional[str] = None
    event_time: Optional[time] = None
    event_description: Optional[str] = None
    event_host: Optional[str] = None
    event_host_name: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("event_name", "event_date", mode="before")
    @classmethod
    def required_not_null(cls, value):
        return _not_null(value)

# Blog schemas
class BlogCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    blog_content: str = Field(min_length=1)

class BlogUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    blog_content: Optional[str] = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "blog_content", mode="before")
    @classmethod
    def required_not_null(cls, value):
        return _not_null(value)

# Timeline schemas
class TimelineFields(BaseModel):
    title: Optional[str] = Field(default=None, max_length=300)
    image_url: Optional[AnyHttpUrl] = None
    attachment_url: Optional[AnyHttpUrl] = None
    attachment_name: Optional[str] = Field(default=None, max_length=300)

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "image_url", "attachment_url", "attachment_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)

class TimelineCreate(TimelineFields):
    content: str = Field(min_length=1)

class TimelineUpdate(TimelineFields):
    content: Optional[str] = Field(default=None, min_length=1)

    @field_validator("content", mode="before")
    @classmethod
    def content_not_null(cls, value):
        return _not_null(value)

# Poll schemas
class PollCreate(BaseModel):
    question: str = Field(min_length=1)
    description: Optional[str] = None
    options: List[str] = Field(min_length=2)
    expires_at: Optional[datetime] = None

    @field_validator("options")
    @classmethod
    def options_not_blank(cls, value):
        if any(not option.strip() for option in value):
            raise ValueError("Option text cannot be empty")
        return value

class VoteCreate(BaseModel):
    option_id: str = Field(min_length=1)
