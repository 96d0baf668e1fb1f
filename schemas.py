"""
Database Schemas

Pydantic models for the MongoDB collections and for the JSON bodies the API
accepts and returns. Collection documents keep the camelCase keys the
NextAuth.js frontend expects.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# Stored in the "users" collection
class User(BaseModel):
    name: str
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., description="BCrypt password hash")
    emailVerified: Optional[datetime] = None
    image: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime


# Request bodies. Fields are optional so presence is checked by the handlers.
class RegisterBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


# Responses
class UserPublic(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    emailVerified: Optional[datetime] = None
    image: Optional[str] = None


class InsertResult(BaseModel):
    acknowledged: bool
    insertedId: str


class Message(BaseModel):
    message: str


class ErrorBody(BaseModel):
    error: str
