import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON, false, func
from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class ErrorLog(Base):
    __tablename__ = 'error_logs'
    id = Column(String(36), primary_key=True, default=_new_id)
    severity = Column(String(16), nullable=False, index=True)
    category = Column(String(32), nullable=False, index=True)
    message = Column(Text, nullable=False)
    stack = Column(Text, nullable=True)
    code = Column(String(64), nullable=True)
    name = Column(String(255), nullable=True)
    cause = Column(JSON, nullable=True)
    # "metadata"는 Declarative에서 예약된 이름
    metadata_ = Column('metadata', JSON, nullable=True)
    resolved = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    url = Column(Text, nullable=True)
    method = Column(String(16), nullable=True)
    user_id = Column(String(64), nullable=True, index=True)
    session_id = Column(String(64), nullable=True)
    request_id = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    environment = Column(String(32), nullable=False, default='development')
    version = Column(String(64), nullable=True)
    timestamp = Column(String(40), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ErrorLog(id={self.id}, severity='{self.severity}', category='{self.category}')>"
