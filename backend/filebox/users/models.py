"""User SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from filebox.db.session import Base


class User(Base):
    """User table: email is unique and the login identifier."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# Pydantic schemas for API
class UserCreate(BaseModel):
    """Registration body. Fields are optional so missing ones map to MissingEmail/MissingPassword."""

    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    """User as returned by API (no password)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class TokenResponse(BaseModel):
    """Login response."""

    token: str
