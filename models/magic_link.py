import uuid
from sqlalchemy import Column, String, DateTime, func
from .base import Base


class MagicLinkToken(Base):
    __tablename__ = "magic_link_tokens"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    redirect_to = Column(String(512), nullable=False, default="/")
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<MagicLinkToken(id={self.id}, email='{self.email}')>"
