from sqlalchemy import Column, String, Integer
from .base import Base, TimestampMixin, generate_uuid


class AuditLog(Base, TimestampMixin):
    """Access trail for donor and recipient profile records."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    actor = Column(String(42), nullable=False)  # acting wallet or "anonymous"
    action = Column(String(50), nullable=False)  # create, view, update
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String, nullable=False)  # wallet address of the record
    status_code = Column(Integer, nullable=True)
    ip_address = Column(String(45), nullable=True)
    request_method = Column(String(10), nullable=True)
    request_path = Column(String(500), nullable=True)
    user_agent = Column(String(500), nullable=True)
