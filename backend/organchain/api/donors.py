"""Donor profile store: create, list, fetch by wallet address, partial update."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.base import get_db, generate_uuid
from ..models.donor import DonorProfile
from ..services.records import BloodType, Organ, ProfileStatus
from .common import CamelModel, wallet_address

router = APIRouter(prefix="/donors", tags=["donors"])


class DonorCreate(CamelModel):
    wallet_address: str
    full_name: str = Field(min_length=1, max_length=200)
    age: int = Field(ge=0, le=150)
    blood_type: BloodType
    email: str = Field(min_length=3, max_length=255)
    phone: Optional[str] = None
    organs: List[Organ] = Field(min_length=1)
    medical_history: Optional[str] = None
    emergency_contact: Optional[str] = None
    status: ProfileStatus = ProfileStatus.ACTIVE

    normalize_wallet = field_validator("wallet_address")(wallet_address)


class DonorUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    age: Optional[int] = Field(None, ge=0, le=150)
    blood_type: Optional[BloodType] = None
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    phone: Optional[str] = None
    organs: Optional[List[Organ]] = Field(None, min_length=1)
    medical_history: Optional[str] = None
    emergency_contact: Optional[str] = None
    status: Optional[ProfileStatus] = None


class DonorResponse(CamelModel):
    wallet_address: str
    full_name: str
    age: int
    blood_type: str
    email: str
    phone: Optional[str]
    organs: List[str]
    medical_history: Optional[str]
    emergency_contact: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime


def _get_donor_or_404(db: Session, address: str) -> DonorProfile:
    donor = db.query(DonorProfile).filter(DonorProfile.wallet_address == address.lower()).first()
    if not donor:
        raise HTTPException(status_code=404, detail="Donor not found")
    return donor


@router.post("", response_model=DonorResponse, status_code=status.HTTP_201_CREATED)
def create_donor(donor_in: DonorCreate, db: Session = Depends(get_db)):
    existing = db.query(DonorProfile).filter(DonorProfile.wallet_address == donor_in.wallet_address).first()
    if existing:
        raise HTTPException(status_code=409, detail="Donor wallet address already registered")
    donor = DonorProfile(id=generate_uuid(), **donor_in.model_dump())
    db.add(donor)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Donor wallet address already registered")
    db.refresh(donor)
    return donor


@router.get("", response_model=List[DonorResponse])
def list_donors(
    status_filter: Optional[ProfileStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    q = db.query(DonorProfile)
    if status_filter:
        q = q.filter(DonorProfile.status == status_filter.value)
    return q.order_by(DonorProfile.created_at).offset(skip).limit(limit).all()


@router.get("/{address}", response_model=DonorResponse)
def get_donor(address: str, db: Session = Depends(get_db)):
    return _get_donor_or_404(db, address)


@router.patch("/{address}", response_model=DonorResponse)
def update_donor(address: str, donor_in: DonorUpdate, db: Session = Depends(get_db)):
    """Partial update; only fields present in the body are written."""
    donor = _get_donor_or_404(db, address)
    for name, value in donor_in.model_dump(exclude_unset=True).items():
        setattr(donor, name, value)
    db.commit()
    db.refresh(donor)
    return donor
