"""
Unit tests for database models and schema.

Tests the SQLAlchemy ORM models, relationships, and the constraints the
service relies on, using an in-memory SQLite database.
"""

import pytest
from sqlalchemy import func, select

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    create_sqlite_memory_engine,
)
from database.models import (
    ApplicationHistory,
    ApplicationStatus,
    Base,
    CurrentTransaction,
    DistributorApplication,
    DocumentKind,
    PROFILE_DOCUMENT_KINDS,
    ProfileStatus,
    User,
    UserRole,
)


class TestEnums:
    """Tests for enum values stored in the database."""

    def test_application_status_values(self):
        assert [s.value for s in ApplicationStatus] == [
            "PENDING", "UNDER_REVIEW", "APPROVED", "REJECTED", "REQUIRES_CHANGES"
        ]

    def test_user_role_values(self):
        assert {r.value for r in UserRole} == {
            "ADMIN", "SALES_MANAGER", "SALES_REPRESENTATIVE", "DISTRIBUTOR"
        }

    def test_profile_status_values(self):
        assert {s.value for s in ProfileStatus} == {"ACTIVE", "INACTIVE", "SUSPENDED"}

    def test_document_kinds_match_form_fields(self):
        """Document kinds double as multipart field names."""
        assert [k.value for k in DocumentKind] == [
            "citizenshipId", "companyRegistration", "panVatRegistration", "officePhoto", "areaMap"
        ]

    def test_profile_document_kinds(self):
        """Only identity documents carry over to a profile."""
        assert DocumentKind.OFFICE_PHOTO not in PROFILE_DOCUMENT_KINDS
        assert DocumentKind.AREA_MAP not in PROFILE_DOCUMENT_KINDS
        assert len(PROFILE_DOCUMENT_KINDS) == 3


class TestSchema:
    """Tests for table metadata."""

    def test_all_tables_present(self):
        assert set(Base.metadata.tables) == {
            "distributor_applications",
            "current_transactions",
            "products_to_distribute",
            "area_coverage_details",
            "application_history",
            "users",
            "distributor_profiles",
            "profile_documents",
            "categories",
            "products",
            "distributor_categories",
        }

    @pytest.mark.parametrize("table,name,columns", [
        ("users", "uq_users_username", {"username"}),
        ("users", "uq_users_email", {"email"}),
        ("users", "uq_users_application_id", {"application_id"}),
        ("profile_documents", "uq_profile_document_kind", {"profile_id", "kind"}),
        ("distributor_categories", "uq_distributor_category", {"distributor_id", "category_id"}),
    ])
    def test_unique_constraints(self, table, name, columns):
        """Uniqueness that provisioning and category assignment depend on."""
        constraints = {
            c.name: {col.name for col in c.columns}
            for c in Base.metadata.tables[table].constraints
            if c.name and c.name.startswith("uq_")
        }
        assert constraints.get(name) == columns


class TestApplicationModel:
    """Tests for DistributorApplication and its children."""

    def _application(self, **fields) -> DistributorApplication:
        application = DistributorApplication(full_name="Sita Sharma", **fields)
        application.current_transactions = [CurrentTransaction(company="XYZ", products="Rice")]
        application.history = [ApplicationHistory(
            status=ApplicationStatus.PENDING, notes="Application submitted", changed_by="system"
        )]
        return application

    def test_document_paths_only_filled_slots(self):
        application = DistributorApplication(
            full_name="Sita Sharma",
            citizenship_id="uploads/c.pdf",
            area_map="uploads/m.png",
        )
        assert application.document_paths() == {
            DocumentKind.CITIZENSHIP_ID: "uploads/c.pdf",
            DocumentKind.AREA_MAP: "uploads/m.png",
        }

    def test_defaults_after_insert(self, db_provider):
        """Status, counts and timestamps are filled on insert."""
        with db_provider.session_scope() as session:
            application = self._application()
            session.add(application)
            session.flush()
            assert application.id is not None
            assert application.status == ApplicationStatus.PENDING
            assert application.sales_man_count == 0
            assert application.declaration is False
            assert application.created_at is not None

    def test_children_deleted_with_application(self, db_provider):
        """Children and history have no life of their own."""
        with db_provider.session_scope() as session:
            application = self._application()
            session.add(application)
            session.flush()
            session.delete(application)

        with db_provider.session_scope() as session:
            assert session.execute(select(func.count(CurrentTransaction.id))).scalar_one() == 0
            assert session.execute(select(func.count(ApplicationHistory.id))).scalar_one() == 0


class TestSessionProvider:
    """Tests for DatabaseSessionProvider lifecycle."""

    def test_unopened_provider_raises(self):
        provider = DatabaseSessionProvider(DatabaseSettings(url="sqlite://"))
        with pytest.raises(RuntimeError):
            provider.get_unit_of_work()
        assert provider.health_check() is False

    def test_open_close_with_external_engine(self):
        """An injected engine survives close() and can be reopened."""
        engine = create_sqlite_memory_engine()
        provider = DatabaseSessionProvider(engine=engine)
        provider.open()
        provider.open()
        provider.create_tables()
        assert provider.health_check() is True

        provider.close()
        assert provider.is_open is False
        assert provider.engine is engine

        provider.open()
        with provider.session_scope() as session:
            assert session.execute(select(func.count(User.id))).scalar_one() == 0
        provider.close()
        engine.dispose()

    def test_owned_sqlite_engine(self, tmp_path):
        """A provider built from a URL creates and disposes its own engine."""
        url = f"sqlite:///{(tmp_path / 'onboarding.db').as_posix()}"
        provider = DatabaseSessionProvider(DatabaseSettings(url=url))
        provider.open()
        provider.create_tables()
        assert provider.health_check() is True
        provider.close()
        with pytest.raises(RuntimeError):
            _ = provider.engine

    def test_settings_url(self):
        """Explicit URL wins; otherwise a psycopg2 URL is built."""
        assert DatabaseSettings(url="sqlite://").is_sqlite
        built = DatabaseSettings(host="db", port=5433, database="d", user="u", password="p").get_url()
        assert built == "postgresql+psycopg2://u:p@db:5433/d"

    def test_unit_of_work_rolls_back_on_error(self, db_provider):
        """Nothing from a failed unit of work is persisted."""
        with pytest.raises(ValueError):
            with db_provider.get_unit_of_work() as uow:
                uow.session.add(DistributorApplication(full_name="Rolled Back"))
                uow.session.flush()
                raise ValueError("boom")

        with db_provider.session_scope() as session:
            assert session.execute(select(func.count(DistributorApplication.id))).scalar_one() == 0
