from sqlalchemy import Column, String, Integer, Text
from .base import Base, TimestampMixin, generate_uuid


class RecipientStatus:
    WAITING = "waiting"
    MATCHED = "matched"
    TRANSPLANTED = "transplanted"

    ALL = [WAITING, MATCHED, TRANSPLANTED]


class RecipientProfile(Base, TimestampMixin):
    __tablename__ = "recipient_profiles"

    id = Column(String, primary_key=True, default=generate_uuid)
    wallet_address = Column(String(42), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    age = Column(Integer, nullable=False)
    blood_type = Column(String(3), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    organ_needed = Column(String(20), nullable=False)
    urgency_level = Column(Integer, nullable=False)  # 1 (low) - 10 (critical)
    medical_history = Column(Text, nullable=True)
    doctor_info = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=RecipientStatus.WAITING)
