"""
Donor view reconciliation.

Merges the ledger record and the off-chain profile for one identity into a
single DonorView. The ledger wins every non-empty field and always owns the
activity status; the profile only fills gaps.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from .records import DonorView, LedgerDonorRecord, ProfileRecord, ProfileStatus

LEDGER = "ledger"
PROFILE = "profile"

# DonorView field -> (LedgerDonorRecord attr, ProfileRecord attr)
_MERGED_FIELDS = {
    "full_name": ("full_name", "full_name"),
    "age": ("age", "age"),
    "blood_type": ("blood_type", "blood_type"),
    "organs": ("organs", "organs"),
}

_BLANKS = {"full_name": "", "age": None, "blood_type": "", "organs": ()}


def _is_empty(value) -> bool:
    # uint8 zero is the contract's unset value
    if value is None or value == 0:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (tuple, list, set, frozenset)):
        return len(value) == 0
    return False


def epoch_to_datetime(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def reconcile(
    ledger: Optional[LedgerDonorRecord],
    profile: Optional[ProfileRecord],
) -> Optional[DonorView]:
    """Return the canonical DonorView, or None when neither store knows the donor."""
    if ledger is None and profile is None:
        return None

    identity = ledger.identity if ledger is not None else profile.identity
    values: Dict = {}
    sources: Dict[str, str] = {}

    for name, (ledger_attr, profile_attr) in _MERGED_FIELDS.items():
        if ledger is not None and not _is_empty(getattr(ledger, ledger_attr)):
            values[name] = getattr(ledger, ledger_attr)
            sources[name] = LEDGER
        elif profile is not None and not _is_empty(getattr(profile, profile_attr)):
            values[name] = getattr(profile, profile_attr)
            sources[name] = PROFILE
        else:
            values[name] = _BLANKS[name]

    registration_date = None
    if ledger is not None and ledger.registered_at_epoch:
        registration_date = epoch_to_datetime(ledger.registered_at_epoch)
        sources["registration_date"] = LEDGER
    elif profile is not None and profile.created_at is not None:
        registration_date = profile.created_at
        sources["registration_date"] = PROFILE

    if ledger is not None:
        status = ProfileStatus.ACTIVE.value if ledger.is_active else ProfileStatus.INACTIVE.value
        sources["status"] = LEDGER
    else:
        status = profile.status
        sources["status"] = PROFILE

    return DonorView(
        identity=identity,
        full_name=values["full_name"],
        age=values["age"],
        blood_type=values["blood_type"],
        organs=tuple(values["organs"]),
        registration_date=registration_date,
        status=status,
        sources=sources,
    )
