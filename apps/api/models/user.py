"""User model."""

from sqlalchemy import BigInteger, Boolean, Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class User(Base):
    """Community member identified by their Steam account."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    steam_id = Column(BigInteger, unique=True, nullable=False, index=True)
    steam_name = Column(String, nullable=False, default="")
    banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    blueprints = relationship("Blueprint", back_populates="user", cascade="all, delete-orphan")
