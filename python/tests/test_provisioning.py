"""
Tests for distributor account provisioning on approval.

Covers idempotency, username derivation, profile mapping, document
carry-over and the uniqueness guarantees the database enforces.
"""

import pytest
from sqlalchemy import func, select

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ProvisioningConfig
from credential_utils import (
    derive_username,
    split_full_name,
    username_candidates,
    verify_password,
)
from database.application_service import ApplicationService
from database.models import (
    ApplicationStatus,
    DocumentKind,
    ProfileStatus,
    User,
    UserRole,
)
from database.provisioning_service import ProvisioningService
from database.repositories import DuplicateEntityError, UserRepository
from errors import ConflictError


FAST = ProvisioningConfig(bcrypt_rounds=4)


def _staff_user(username: str, email: str, application_id=None) -> User:
    return User(
        username=username,
        email=email,
        full_name="Existing Account",
        password_hash="x",
        role=UserRole.DISTRIBUTOR,
        application_id=application_id,
    )


def _approve(db_provider, config, app_id):
    with db_provider.get_unit_of_work() as uow:
        result = ApplicationService(uow.session, config).update_status(
            app_id, ApplicationStatus.APPROVED, reviewer_id="mgr-1", reviewer_name="Hari Manager"
        )
        uow.commit()
        return result


# ============================================
# CREDENTIAL HELPERS
# ============================================

class TestCredentialHelpers:
    """Tests for username/password helpers."""

    def test_username_candidates_widen(self):
        """8, then 12, then all hex characters of the id."""
        app_id = "123e4567-e89b-12d3-a456-426614174000"
        assert list(username_candidates(app_id)) == [
            "dist_14174000",
            "dist_426614174000",
            "dist_123e4567e89b12d3a456426614174000",
        ]

    def test_derive_username_skips_taken(self):
        """A taken short name falls through to the wider one."""
        app_id = "123e4567-e89b-12d3-a456-426614174000"
        taken = {"dist_14174000"}
        assert derive_username(app_id, taken.__contains__) == "dist_426614174000"

    def test_derive_username_exhausted(self):
        """Every candidate taken is an error."""
        with pytest.raises(ValueError):
            derive_username("123e4567-e89b-12d3-a456-426614174000", lambda _: True)

    @pytest.mark.parametrize("full_name,expected", [
        ("Ram Bahadur Thapa", ("Ram", "Bahadur Thapa")),
        ("Sita", ("Sita", "Distributor")),
        ("  ", ("Unknown", "Distributor")),
        ("", ("Unknown", "Distributor")),
    ])
    def test_split_full_name(self, full_name, expected):
        """First token is the first name; the rest is the last name."""
        assert split_full_name(full_name) == expected


# ============================================
# PROVISIONING
# ============================================

class TestEnsureAccount:
    """Tests for ProvisioningService.ensure_account."""

    def test_creates_distributor_with_profile(self, db_provider, test_config, submit):
        """Approval creates an active, verified DISTRIBUTOR with a mapped profile."""
        app_id = submit()
        result = _approve(db_provider, test_config, app_id)

        assert result.provisioning.created is True
        user = result.provisioning.user
        assert user.role == UserRole.DISTRIBUTOR
        assert user.is_active is True
        assert user.is_verified is True
        assert user.application_id == app_id
        assert user.department == "Distributor"

        profile = user.profile
        assert profile.status == ProfileStatus.ACTIVE
        assert profile.phone_number == "9800000000"
        assert profile.national_id == "12-01-75-00123"
        assert profile.company_name == "Thapa Traders"
        assert profile.pan_number == "301234567"
        assert profile.vat_number == "301234567"
        assert profile.description == "Distributor for Bagmati"
        assert profile.approved_by == "mgr-1"

    def test_generated_password_matches_hash(self, db_provider, test_config, submit):
        """The one-time password verifies against the stored bcrypt hash."""
        result = _approve(db_provider, test_config, submit())

        password = result.provisioning.password
        assert len(password) == 12
        assert password.isalnum()
        assert verify_password(password, result.provisioning.user.password_hash)
        assert not verify_password("wrong-password", result.provisioning.user.password_hash)

    def test_uses_applicant_email_when_present(self, db_provider, test_config, submit, make_record):
        """Applicant email wins over the synthetic one."""
        app_id = submit(make_record(email="ram@example.com"))
        result = _approve(db_provider, test_config, app_id)
        assert result.provisioning.user.email == "ram@example.com"

    def test_idempotent_direct_calls(self, db_provider, submit):
        """Calling ensure_account repeatedly returns the same account."""
        app_id = submit()
        with db_provider.get_unit_of_work() as uow:
            service = ProvisioningService(uow.session, FAST)
            application = ApplicationService(uow.session).get(app_id)
            first = service.ensure_account(application)
            again = service.ensure_account(application)
            uow.commit()

        assert first.created is True
        assert again.created is False
        assert again.password is None
        assert again.user.id == first.user.id

    def test_reapproval_after_status_round_trip(self, db_provider, test_config, submit):
        """APPROVED -> UNDER_REVIEW -> APPROVED keeps one account."""
        app_id = submit()
        _approve(db_provider, test_config, app_id)
        with db_provider.get_unit_of_work() as uow:
            ApplicationService(uow.session, test_config).update_status(
                app_id, ApplicationStatus.UNDER_REVIEW, reviewer_id="mgr-1", reviewer_name="Hari"
            )
            uow.commit()
        result = _approve(db_provider, test_config, app_id)

        assert result.changed is True
        assert result.credentials_issued is False
        with db_provider.session_scope() as session:
            assert session.execute(select(func.count(User.id))).scalar_one() == 1

    def test_username_collision_widens(self, db_provider, test_config, submit):
        """An existing dist_<last8> pushes the new account to dist_<last12>."""
        app_id = submit()
        with db_provider.session_scope() as session:
            session.add(_staff_user(f"dist_{app_id.hex[-8:]}", "other@example.com"))

        result = _approve(db_provider, test_config, app_id)
        assert result.provisioning.user.username == f"dist_{app_id.hex[-12:]}"

    def test_only_identity_documents_carry_over(self, db_provider, test_config, submit):
        """Citizenship, registration and PAN/VAT documents move to the profile."""
        app_id = submit(documents={
            DocumentKind.CITIZENSHIP_ID: "uploads/c.pdf",
            DocumentKind.PAN_VAT_REGISTRATION: "uploads/p.pdf",
            DocumentKind.OFFICE_PHOTO: "uploads/o.jpg",
        })
        result = _approve(db_provider, test_config, app_id)

        assert result.provisioning.user.profile.document_map() == {
            "citizenshipId": "uploads/c.pdf",
            "panVatRegistration": "uploads/p.pdf",
        }

    def test_email_conflict_rolls_back_approval(self, db_provider, test_config, submit, make_record):
        """An email owned by another account aborts the whole approval."""
        app_id = submit(make_record(email="taken@example.com"))
        with db_provider.session_scope() as session:
            session.add(_staff_user("someone", "taken@example.com"))

        with pytest.raises(ConflictError) as exc_info:
            _approve(db_provider, test_config, app_id)
        assert exc_info.value.code == "EMAIL_ALREADY_REGISTERED"
        assert exc_info.value.status_code == 409

        with db_provider.get_unit_of_work() as uow:
            application = ApplicationService(uow.session, test_config).get(app_id)
            assert application.status == ApplicationStatus.PENDING
            assert len(application.history) == 1
            assert UserRepository(uow.session).get_by_application_id(app_id) is None


class TestUniqueApplicationLink:
    """The storage-level guarantee behind idempotent provisioning."""

    def test_second_account_for_same_application_is_rejected(self, db_provider, submit):
        """UNIQUE(users.application_id) surfaces as DuplicateEntityError."""
        app_id = submit()
        with db_provider.session_scope() as session:
            session.add(_staff_user("first", "first@example.com", application_id=app_id))

        with pytest.raises(DuplicateEntityError) as exc_info:
            with db_provider.get_unit_of_work() as uow:
                UserRepository(uow.session).add(
                    _staff_user("second", "second@example.com", application_id=app_id)
                )
        assert exc_info.value.status_code == 409

    def test_duplicate_username_is_rejected(self, db_provider):
        """Usernames are unique across accounts."""
        with db_provider.session_scope() as session:
            session.add(_staff_user("dup", "a@example.com"))

        with pytest.raises(DuplicateEntityError):
            with db_provider.get_unit_of_work() as uow:
                UserRepository(uow.session).add(_staff_user("dup", "b@example.com"))
