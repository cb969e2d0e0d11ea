"""
Tests for distributor credential and category management.
"""

import uuid

import pytest
from sqlalchemy import event

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ProvisioningConfig
from credential_utils import verify_password
from database.application_service import ApplicationService
from database.category_service import CategoryService, slugify
from database.credential_service import CredentialService, CredentialUpdate
from database.models import ApplicationStatus, DistributorCategory, ProfileStatus, User, UserRole
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError


FAST = ProvisioningConfig(bcrypt_rounds=4)


@pytest.fixture
def distributor_id(db_provider, test_config, submit):
    """Id of an account provisioned by approving a fresh application."""
    app_id = submit()
    with db_provider.get_unit_of_work() as uow:
        result = ApplicationService(uow.session, test_config).update_status(
            app_id, ApplicationStatus.APPROVED, reviewer_id="mgr-1", reviewer_name="Hari"
        )
        uow.commit()
        return result.provisioning.user.id


def _save(db_provider, distributor_id, **kwargs):
    update = CredentialUpdate(
        username=kwargs.pop("username", "ram_thapa"),
        email=kwargs.pop("email", "ram@example.com"),
        **kwargs
    )
    with db_provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, FAST).save_credentials(distributor_id, update, assigned_by="mgr-1")
        uow.commit()
        return user


def _load(db_provider, distributor_id) -> User:
    with db_provider.get_unit_of_work() as uow:
        user = CredentialService(uow.session, FAST).get_credentials(distributor_id)
        # touch lazy collections while the session is open
        user.category_slugs = sorted(a.category.slug for a in user.category_assignments)
        return user


# ============================================
# SAVE / REPLACE
# ============================================

class TestSaveCredentials:
    """Tests for atomic credential + category replacement."""

    def test_save_replaces_login_fields_and_categories(self, db_provider, distributor_id, categories):
        """Username, email and category set are replaced together."""
        _save(db_provider, distributor_id, categories=[categories["beverages"], categories["snacks"]])
        user = _load(db_provider, distributor_id)
        assert user.username == "ram_thapa"
        assert user.email == "ram@example.com"
        assert user.category_slugs == ["beverages", "snacks"]

        _save(db_provider, distributor_id, categories=[categories["snacks"]])
        assert _load(db_provider, distributor_id).category_slugs == ["snacks"]

    def test_save_with_empty_categories_clears_assignments(self, db_provider, distributor_id, categories):
        """An empty list removes every assignment."""
        _save(db_provider, distributor_id, categories=[categories["beverages"]])
        _save(db_provider, distributor_id, categories=[])
        assert _load(db_provider, distributor_id).category_slugs == []

    def test_save_deduplicates_category_ids(self, db_provider, distributor_id, categories):
        """Repeated ids are stored once."""
        _save(db_provider, distributor_id, categories=[categories["snacks"], categories["snacks"]])
        assert _load(db_provider, distributor_id).category_slugs == ["snacks"]

    def test_password_is_hashed_when_given(self, db_provider, distributor_id):
        """A new password replaces the hash; omitting it keeps the old one."""
        before = _load(db_provider, distributor_id).password_hash
        _save(db_provider, distributor_id)
        assert _load(db_provider, distributor_id).password_hash == before

        _save(db_provider, distributor_id, password="n3w-Secret")
        after = _load(db_provider, distributor_id).password_hash
        assert after != before
        assert verify_password("n3w-Secret", after)

    def test_failure_after_clearing_assignments_rolls_back(self, db_provider, distributor_id, categories):
        """A failing assignment insert keeps the old username and category set."""
        _save(db_provider, distributor_id, categories=[categories["beverages"]])

        def explode(mapper, connection, target):
            raise RuntimeError("simulated assignment insert failure")

        event.listen(DistributorCategory, "before_insert", explode)
        try:
            with pytest.raises(RuntimeError):
                _save(
                    db_provider, distributor_id,
                    username="ram_new", email="ram.new@example.com",
                    categories=[categories["snacks"]]
                )
        finally:
            event.remove(DistributorCategory, "before_insert", explode)

        user = _load(db_provider, distributor_id)
        assert user.username == "ram_thapa"
        assert user.email == "ram@example.com"
        assert user.category_slugs == ["beverages"]

    def test_conflicting_username_leaves_everything_untouched(self, db_provider, distributor_id, categories):
        """A conflict aborts the update and the category replacement."""
        _save(db_provider, distributor_id, categories=[categories["beverages"]])

        with db_provider.session_scope() as session:
            session.add(User(
                username="taken_name", email="other@example.com", full_name="Other",
                password_hash="x", role=UserRole.SALES_REPRESENTATIVE
            ))

        with pytest.raises(ConflictError) as exc_info:
            _save(db_provider, distributor_id, username="taken_name", categories=[categories["snacks"]])
        assert exc_info.value.code == "CREDENTIALS_ALREADY_EXISTS"
        assert "username" in exc_info.value.errors

        user = _load(db_provider, distributor_id)
        assert user.username == "ram_thapa"
        assert user.category_slugs == ["beverages"]

    def test_conflicting_email_reports_email_field(self, db_provider, distributor_id):
        """The conflicting field is named in the error map."""
        with db_provider.session_scope() as session:
            session.add(User(
                username="someone", email="dup@example.com", full_name="Other",
                password_hash="x", role=UserRole.ADMIN
            ))
        with pytest.raises(ConflictError) as exc_info:
            _save(db_provider, distributor_id, email="dup@example.com")
        assert "email" in exc_info.value.errors

    def test_unknown_category_is_rejected(self, db_provider, distributor_id, categories):
        """Unknown category ids fail validation and change nothing."""
        _save(db_provider, distributor_id, categories=[categories["beverages"]])

        with pytest.raises(ValidationError) as exc_info:
            _save(db_provider, distributor_id, username="renamed", categories=[uuid.uuid4()])
        assert exc_info.value.code == "INVALID_CATEGORIES"

        user = _load(db_provider, distributor_id)
        assert user.username == "ram_thapa"
        assert user.category_slugs == ["beverages"]

    def test_unknown_distributor(self, db_provider):
        """Unknown id is DISTRIBUTOR_NOT_FOUND."""
        with pytest.raises(NotFoundError) as exc_info:
            _save(db_provider, uuid.uuid4())
        assert exc_info.value.code == "DISTRIBUTOR_NOT_FOUND"

    def test_non_distributor_account_is_rejected(self, db_provider):
        """Staff accounts are not managed here."""
        with db_provider.session_scope() as session:
            staff = User(username="admin", email="admin@example.com", full_name="Admin",
                         password_hash="x", role=UserRole.ADMIN)
            session.add(staff)
            session.flush()
            staff_id = staff.id

        with pytest.raises(ValidationError) as exc_info:
            _save(db_provider, staff_id)
        assert exc_info.value.code == "INVALID_USER_TYPE"


# ============================================
# RESET / ACTIVATION / LOOKUP
# ============================================

class TestResetAndToggle:
    """Tests for reset, activate/deactivate and lookup."""

    def test_reset_generates_new_username_and_password(self, db_provider, distributor_id, categories):
        """Reset swaps credentials but keeps category assignments."""
        _save(db_provider, distributor_id, categories=[categories["snacks"]])
        before = _load(db_provider, distributor_id)

        with db_provider.get_unit_of_work() as uow:
            CredentialService(uow.session, FAST).reset_credentials(distributor_id)
            uow.commit()

        after = _load(db_provider, distributor_id)
        assert after.username != before.username
        assert after.username.startswith("dist_")
        assert len(after.username) == len("dist_") + 8
        assert after.password_hash != before.password_hash
        assert after.category_slugs == ["snacks"]

    def test_deactivate_then_activate(self, db_provider, distributor_id):
        """Toggling updates the account and its profile status."""
        with db_provider.get_unit_of_work() as uow:
            user = CredentialService(uow.session, FAST).set_active(distributor_id, False)
            uow.commit()
            assert user.is_active is False
            assert user.profile.status == ProfileStatus.INACTIVE

        with db_provider.get_unit_of_work() as uow:
            user = CredentialService(uow.session, FAST).set_active(distributor_id, True)
            uow.commit()
            assert user.is_active is True
            assert user.profile.status == ProfileStatus.ACTIVE

    def test_toggle_is_not_idempotent(self, db_provider, distributor_id):
        """Requesting the current state is an error."""
        with db_provider.get_unit_of_work() as uow:
            with pytest.raises(InvalidStateError) as exc_info:
                CredentialService(uow.session, FAST).set_active(distributor_id, True)
        assert exc_info.value.code == "USER_ALREADY_ACTIVE"

        with db_provider.get_unit_of_work() as uow:
            CredentialService(uow.session, FAST).set_active(distributor_id, False)
            uow.commit()

        with db_provider.get_unit_of_work() as uow:
            with pytest.raises(InvalidStateError) as exc_info:
                CredentialService(uow.session, FAST).set_active(distributor_id, False)
        assert exc_info.value.code == "USER_ALREADY_INACTIVE"

    def test_find_by_application(self, db_provider, submit, distributor_id):
        """Lookup by application id; unknown application is USER_NOT_FOUND."""
        unprovisioned = submit()
        with db_provider.get_unit_of_work() as uow:
            service = CredentialService(uow.session, FAST)
            user = service.get_credentials(distributor_id)
            assert service.find_by_application(user.application_id).id == distributor_id

            with pytest.raises(NotFoundError) as exc_info:
                service.find_by_application(unprovisioned)
            assert exc_info.value.code == "USER_NOT_FOUND"

    def test_assigned_products_only_active(self, db_provider, distributor_id, categories):
        """Only active products in active assigned categories are listed."""
        _save(db_provider, distributor_id, categories=[categories["beverages"], categories["retired"]])

        with db_provider.get_unit_of_work() as uow:
            products = CredentialService(uow.session, FAST).assigned_products(distributor_id)
            titles = [p.title for p in products]
        assert sorted(titles) == ["Lemon Soda", "Mango Juice"]


# ============================================
# CATEGORIES
# ============================================

class TestCategories:
    """Tests for category reference data."""

    def test_list_counts_active_products(self, db_provider, categories):
        """Inactive categories are hidden; counts ignore inactive products."""
        with db_provider.get_unit_of_work() as uow:
            rows = CategoryService(uow.session).list()
            result = [(c.slug, count) for c, count in rows]
        assert result == [("beverages", 2), ("snacks", 0)]

    def test_create_category_slugifies_title(self, db_provider):
        """Slug derives from the title."""
        with db_provider.get_unit_of_work() as uow:
            category = CategoryService(uow.session).create("Dairy & Eggs", sort_order=4)
            uow.commit()
        assert category.slug == "dairy-eggs"
        assert slugify("  Fresh  Fruit! ") == "fresh-fruit"

    def test_duplicate_slug_is_conflict(self, db_provider, categories):
        """Creating an existing slug is a 409."""
        with pytest.raises(ConflictError):
            with db_provider.get_unit_of_work() as uow:
                CategoryService(uow.session).create("Snacks")

    def test_title_without_letters_is_rejected(self, db_provider):
        """A slug must not end up empty."""
        with db_provider.get_unit_of_work() as uow:
            with pytest.raises(ValidationError):
                CategoryService(uow.session).create("!!!")
