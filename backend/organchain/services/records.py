"""
Donor record types shared by the ledger client, the profile-store client and
the reconciliation engine.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from ..core.errors import InvalidRegistration

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")

MIN_AGE = 0
MAX_AGE = 150


class BloodType(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class Organ(str, Enum):
    HEART = "heart"
    KIDNEY = "kidney"
    LIVER = "liver"
    LUNGS = "lungs"
    PANCREAS = "pancreas"
    CORNEAS = "corneas"


class ProfileStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


BLOOD_TYPES = frozenset(b.value for b in BloodType)
ORGANS = frozenset(o.value for o in Organ)


def normalize_identity(address: str) -> str:
    """Lower-case a wallet address and check its format."""
    normalized = (address or "").strip().lower()
    if not _ADDRESS_RE.match(normalized):
        raise ValueError(f"Invalid wallet address: {address!r}")
    return normalized


@dataclass(frozen=True)
class LedgerDonorRecord:
    """Donor entry as stored by the registry contract."""
    identity: str
    full_name: str
    age: int
    blood_type: str
    organs: Tuple[str, ...]
    medical_history: str
    registered_at_epoch: int
    is_active: bool


@dataclass
class ProfileRecord:
    """Off-chain donor profile. Status is advisory and may lag the ledger."""
    identity: str
    full_name: str = ""
    age: Optional[int] = None
    blood_type: str = ""
    organs: Tuple[str, ...] = ()
    email: str = ""
    phone: str = ""
    medical_history: str = ""
    emergency_contact: str = ""
    status: str = ProfileStatus.ACTIVE.value
    created_at: Optional[datetime] = None

    def to_payload(self) -> Dict:
        """Serialize to the profile store's camelCase wire format."""
        payload = {
            "walletAddress": self.identity,
            "fullName": self.full_name,
            "age": self.age,
            "bloodType": self.blood_type,
            "organs": list(self.organs),
            "email": self.email,
            "phone": self.phone,
            "medicalHistory": self.medical_history,
            "emergencyContact": self.emergency_contact,
            "status": self.status,
        }
        if self.created_at is not None:
            payload["createdAt"] = self.created_at.isoformat()
        return payload

    @classmethod
    def from_payload(cls, payload: Dict) -> "ProfileRecord":
        created_at = payload.get("createdAt")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        # The profile store writes naive UTC timestamps
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            identity=normalize_identity(payload["walletAddress"]),
            full_name=payload.get("fullName") or "",
            age=payload.get("age"),
            blood_type=payload.get("bloodType") or "",
            organs=tuple(payload.get("organs") or ()),
            email=payload.get("email") or "",
            phone=payload.get("phone") or "",
            medical_history=payload.get("medicalHistory") or "",
            emergency_contact=payload.get("emergencyContact") or "",
            status=payload.get("status") or ProfileStatus.ACTIVE.value,
            created_at=created_at,
        )


@dataclass(frozen=True)
class DonorView:
    """Reconciled read model; rebuilt on every load, never persisted."""
    identity: str
    full_name: str
    age: Optional[int]
    blood_type: str
    organs: Tuple[str, ...]
    registration_date: Optional[datetime]
    status: str
    # field name -> "ledger" | "profile"
    sources: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass
class RegistrationForm:
    full_name: str
    age: int
    blood_type: str
    organs: Tuple[str, ...]
    email: str = ""
    phone: str = ""
    medical_history: str = ""
    emergency_contact: str = ""

    def validate(self) -> None:
        if not self.full_name or not self.full_name.strip():
            raise InvalidRegistration("Full name is required")
        if isinstance(self.age, bool) or not isinstance(self.age, int):
            raise InvalidRegistration("Age must be an integer")
        if not MIN_AGE <= self.age <= MAX_AGE:
            raise InvalidRegistration(f"Age must be between {MIN_AGE} and {MAX_AGE}")
        if not self.email or "@" not in self.email:
            raise InvalidRegistration("A valid email address is required")
        if self.blood_type not in BLOOD_TYPES:
            raise InvalidRegistration(f"Unknown blood type: {self.blood_type}")
        if not self.organs:
            raise InvalidRegistration("Select at least one organ for donation")
        unknown = set(self.organs) - ORGANS
        if unknown:
            raise InvalidRegistration(f"Unknown organs: {', '.join(sorted(unknown))}")
        if len(set(self.organs)) != len(self.organs):
            raise InvalidRegistration("Organs must not repeat")

    def to_profile(self, identity: str) -> ProfileRecord:
        return ProfileRecord(
            identity=identity,
            full_name=self.full_name.strip(),
            age=self.age,
            blood_type=self.blood_type,
            organs=tuple(self.organs),
            email=self.email,
            phone=self.phone,
            medical_history=self.medical_history,
            emergency_contact=self.emergency_contact,
            status=ProfileStatus.ACTIVE.value,
        )
