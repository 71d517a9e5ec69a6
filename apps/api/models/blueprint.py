"""Blueprint model for user-submitted level blueprints."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Blueprint(Base):
    """Named blueprint artifact; file_id keys both stored blobs (artifact and preview image)."""

    __tablename__ = "blueprints"
    # (user_id, name) uniqueness is checked by the submission service, not the table.
    __table_args__ = (Index("ix_blueprints_user_id_name", "user_id", "name"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    file_id = Column(String, nullable=False, unique=True)
    tags = Column(JSON, nullable=False, default=lambda: [])
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="blueprints")
