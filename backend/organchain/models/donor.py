from sqlalchemy import Column, String, Integer, Text, JSON
from .base import Base, TimestampMixin, generate_uuid


class DonorStatus:
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"

    ALL = [ACTIVE, PENDING, INACTIVE]


class DonorProfile(Base, TimestampMixin):
    """Off-chain donor profile. The ledger stays authoritative for activity."""
    __tablename__ = "donor_profiles"

    id = Column(String, primary_key=True, default=generate_uuid)
    wallet_address = Column(String(42), unique=True, nullable=False, index=True)  # lower-cased
    full_name = Column(String(200), nullable=False)
    age = Column(Integer, nullable=False)
    blood_type = Column(String(3), nullable=False)
    organs = Column(JSON, nullable=False, default=list)
    # Contact data - never written to the ledger
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    medical_history = Column(Text, nullable=True)
    emergency_contact = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default=DonorStatus.ACTIVE)
