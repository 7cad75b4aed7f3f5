"""Recipient profiles: same four-endpoint shape as donors."""
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.base import get_db, generate_uuid
from ..models.recipient import RecipientProfile
from ..services.records import BloodType, Organ
from .common import CamelModel, wallet_address

router = APIRouter(prefix="/recipients", tags=["recipients"])

RecipientStatusValue = Literal["waiting", "matched", "transplanted"]


class RecipientCreate(CamelModel):
    wallet_address: str
    full_name: str = Field(min_length=1, max_length=200)
    age: int = Field(ge=0, le=150)
    blood_type: BloodType
    email: str = Field(min_length=3, max_length=255)
    phone: Optional[str] = None
    organ_needed: Organ
    urgency_level: int = Field(ge=1, le=10)
    medical_history: Optional[str] = None
    doctor_info: Optional[str] = None
    status: RecipientStatusValue = "waiting"

    normalize_wallet = field_validator("wallet_address")(wallet_address)


class RecipientUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    age: Optional[int] = Field(None, ge=0, le=150)
    blood_type: Optional[BloodType] = None
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    phone: Optional[str] = None
    organ_needed: Optional[Organ] = None
    urgency_level: Optional[int] = Field(None, ge=1, le=10)
    medical_history: Optional[str] = None
    doctor_info: Optional[str] = None
    status: Optional[RecipientStatusValue] = None


class RecipientResponse(CamelModel):
    wallet_address: str
    full_name: str
    age: int
    blood_type: str
    email: str
    phone: Optional[str]
    organ_needed: str
    urgency_level: int
    medical_history: Optional[str]
    doctor_info: Optional[str]
    status: str
    created_at: datetime


def _get_recipient_or_404(db: Session, address: str) -> RecipientProfile:
    recipient = db.query(RecipientProfile).filter(RecipientProfile.wallet_address == address.lower()).first()
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    return recipient


@router.post("", response_model=RecipientResponse, status_code=status.HTTP_201_CREATED)
def create_recipient(recipient_in: RecipientCreate, db: Session = Depends(get_db)):
    existing = (
        db.query(RecipientProfile)
        .filter(RecipientProfile.wallet_address == recipient_in.wallet_address)
        .first()
    )
    if existing:
        raise HTTPException(status_code=409, detail="Recipient wallet address already registered")
    recipient = RecipientProfile(id=generate_uuid(), **recipient_in.model_dump())
    db.add(recipient)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Recipient wallet address already registered")
    db.refresh(recipient)
    return recipient


@router.get("", response_model=List[RecipientResponse])
def list_recipients(
    organ_needed: Optional[Organ] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """List recipients, most urgent first."""
    q = db.query(RecipientProfile)
    if organ_needed:
        q = q.filter(RecipientProfile.organ_needed == organ_needed.value)
    return q.order_by(RecipientProfile.urgency_level.desc()).offset(skip).limit(limit).all()


@router.get("/{address}", response_model=RecipientResponse)
def get_recipient(address: str, db: Session = Depends(get_db)):
    return _get_recipient_or_404(db, address)


@router.patch("/{address}", response_model=RecipientResponse)
def update_recipient(address: str, recipient_in: RecipientUpdate, db: Session = Depends(get_db)):
    recipient = _get_recipient_or_404(db, address)
    for name, value in recipient_in.model_dump(exclude_unset=True).items():
        setattr(recipient, name, value)
    db.commit()
    db.refresh(recipient)
    return recipient
