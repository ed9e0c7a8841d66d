from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PetProfileIn(BaseModel):
    species: str = Field(min_length=1, max_length=30)
    name: Optional[str] = Field(default=None, max_length=50)
    breed: Optional[str] = Field(default=None, max_length=50)
    age: Optional[int] = Field(default=None, ge=0, le=50)
    gender: Optional[str] = Field(default=None, max_length=20)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000, pattern=r"^[^<>]*$")
    session_id: Optional[str] = Field(default=None, max_length=100, pattern=r"^[a-zA-Z0-9\-_]*$")
    profile: Optional[PetProfileIn] = None


class ChatResponse(BaseModel):
    answer: str
    reasoning: Optional[str] = None
    session_id: str
    cached: bool = False
    error_code: Optional[str] = None
    error_id: Optional[str] = None
    timestamp: datetime


class SessionEndResponse(BaseModel):
    session_id: str
    removed: bool


class CacheClearResponse(BaseModel):
    removed: int
