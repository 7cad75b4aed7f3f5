from datetime import datetime, timezone

from organchain.services.reconciliation import reconcile
from organchain.services.records import LedgerDonorRecord, ProfileRecord

ADDRESS = "0xab" + "0" * 36 + "12"
EPOCH = 1_700_000_000


def make_ledger(**overrides) -> LedgerDonorRecord:
    fields = dict(
        identity=ADDRESS,
        full_name="Ada Donor",
        age=34,
        blood_type="O+",
        organs=("kidney", "liver"),
        medical_history="",
        registered_at_epoch=EPOCH,
        is_active=True,
    )
    fields.update(overrides)
    return LedgerDonorRecord(**fields)


def make_profile(**overrides) -> ProfileRecord:
    fields = dict(
        identity=ADDRESS,
        full_name="Ada P. Donor",
        age=35,
        blood_type="A+",
        organs=("heart",),
        email="ada@example.com",
        status="active",
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return ProfileRecord(**fields)


def test_nothing_known_is_not_registered():
    assert reconcile(None, None) is None


def test_ledger_fields_win_when_both_present():
    view = reconcile(make_ledger(), make_profile())
    assert view.full_name == "Ada Donor"
    assert view.age == 34
    assert view.blood_type == "O+"
    assert view.organs == ("kidney", "liver")
    assert view.registration_date == datetime.fromtimestamp(EPOCH, tz=timezone.utc)
    assert set(view.sources.values()) == {"ledger"}


def test_inactive_ledger_overrides_active_profile():
    """A stale 'active' profile must never mask a revoked ledger record."""
    view = reconcile(make_ledger(is_active=False), make_profile(status="active"))
    assert view.status == "inactive"


def test_active_ledger_overrides_inactive_profile():
    view = reconcile(make_ledger(is_active=True), make_profile(status="inactive"))
    assert view.status == "active"


def test_profile_only_passes_everything_through():
    profile = make_profile(status="pending")
    view = reconcile(None, profile)
    assert view.full_name == profile.full_name
    assert view.age == profile.age
    assert view.blood_type == profile.blood_type
    assert view.organs == profile.organs
    assert view.registration_date == profile.created_at
    assert view.status == "pending"
    assert set(view.sources.values()) == {"profile"}


def test_ledger_only_uses_blank_profile_fields():
    view = reconcile(make_ledger(), None)
    assert view.identity == ADDRESS
    assert view.full_name == "Ada Donor"
    assert view.status == "active"


def test_empty_ledger_fields_fall_back_to_profile():
    view = reconcile(make_ledger(full_name="  ", age=0, organs=()), make_profile())
    assert view.full_name == "Ada P. Donor"
    assert view.age == 35
    assert view.organs == ("heart",)
    assert view.sources["full_name"] == "profile"
    assert view.sources["blood_type"] == "ledger"


def test_missing_epoch_falls_back_to_profile_created_at():
    profile = make_profile()
    view = reconcile(make_ledger(registered_at_epoch=0), profile)
    assert view.registration_date == profile.created_at
    assert view.status == "active"


def test_field_empty_on_both_sides_is_blank():
    view = reconcile(make_ledger(full_name=""), make_profile(full_name=""))
    assert view.full_name == ""
    assert "full_name" not in view.sources


def test_registration_scenario_view():
    ledger = make_ledger(organs=("kidney", "liver"), age=34, blood_type="O+")
    profile = make_profile(full_name="Ada Donor", age=34, blood_type="O+", organs=("kidney", "liver"))
    view = reconcile(ledger, profile)
    assert set(view.organs) == {"kidney", "liver"}
    assert view.age == 34
    assert view.blood_type == "O+"
    assert view.status == "active"
    assert view.registration_date == datetime.fromtimestamp(EPOCH, tz=timezone.utc)
