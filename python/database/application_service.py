"""
Distributor application workflow: intake, review and reporting.

Usage:
    with provider.get_unit_of_work() as uow:
        service = ApplicationService(uow.session, config)
        result = service.update_status(app_id, ApplicationStatus.APPROVED,
                                       reviewer_id="u-1", reviewer_name="Sita")
        uow.commit()

None of the methods commit; the caller's Unit of Work decides.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from database.models import (
    ApplicationHistory,
    ApplicationStatus,
    AreaCoverageDetail,
    CurrentTransaction,
    DistributorApplication,
    DocumentKind,
    ProductToDistribute,
    utcnow,
)
from database.provisioning_service import ProvisioningResult, ProvisioningService
from database.repositories import ApplicationFilter, ApplicationRepository
from errors import AuthorizationError, InvalidStateError, ValidationError

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"

# Application columns that hold uploaded document paths
DOCUMENT_COLUMNS = {
    DocumentKind.CITIZENSHIP_ID: "citizenship_id",
    DocumentKind.COMPANY_REGISTRATION: "company_registration",
    DocumentKind.PAN_VAT_REGISTRATION: "pan_vat_registration",
    DocumentKind.OFFICE_PHOTO: "office_photo",
    DocumentKind.AREA_MAP: "area_map",
}


@dataclass
class IntakeRecord:
    """Validated submission, flattened to application column names."""
    fields: Dict[str, Any]
    current_transactions: List[Dict[str, Any]] = field(default_factory=list)
    products_to_distribute: List[Dict[str, Any]] = field(default_factory=list)
    area_coverage_details: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class StatusChangeResult:
    application: DistributorApplication
    changed: bool
    provisioning: Optional[ProvisioningResult] = None

    @property
    def credentials_issued(self) -> bool:
        return self.provisioning is not None and self.provisioning.created


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _month_start(year: int, month: int) -> datetime:
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


class ApplicationService:
    """Intake, status transitions, listing and statistics for applications."""

    def __init__(self, session: Session, config=None):
        """
        Args:
            session: SQLAlchemy session owned by a Unit of Work
            config: ConfigManager (provisioning settings are taken from it)
        """
        self.session = session
        self.config = config
        self._applications = ApplicationRepository(session)
        provisioning_config = config.provisioning if config is not None else None
        self._provisioning = ProvisioningService(session, provisioning_config)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    @staticmethod
    def validate_record(record: IntakeRecord) -> str:
        """
        Check the parts of a submission that schema validation cannot.

        Returns:
            The trimmed applicant name

        Raises:
            ValidationError: Applicant name is missing
        """
        full_name = (record.fields.get("full_name") or "").strip()
        if not full_name:
            raise ValidationError(
                "Personal details are required",
                code="MISSING_PERSONAL_DETAILS",
                errors={"personalDetails.fullName": ["Full name is required"]}
            )
        return full_name

    def submit(
        self,
        record: IntakeRecord,
        documents: Optional[Dict[DocumentKind, str]] = None,
        created_by_id: Optional[str] = None
    ) -> DistributorApplication:
        """
        Persist an application with its children and initial history entry.

        Raises:
            ValidationError: Applicant name is missing
        """
        full_name = self.validate_record(record)

        application = DistributorApplication(**{**record.fields, "full_name": full_name})
        application.status = ApplicationStatus.PENDING
        application.created_by_id = created_by_id

        for kind, path in (documents or {}).items():
            setattr(application, DOCUMENT_COLUMNS[DocumentKind(kind)], path)

        application.current_transactions = [
            CurrentTransaction(
                company=row["company"],
                products=row["products"],
                turnover=row.get("turnover")
            )
            for row in record.current_transactions
            if row.get("company") and row.get("products")
        ]
        application.products_to_distribute = [
            ProductToDistribute(
                product_name=row["product_name"],
                monthly_sales_capacity=row.get("monthly_sales_capacity")
            )
            for row in record.products_to_distribute
            if row.get("product_name")
        ]
        application.area_coverage_details = [
            AreaCoverageDetail(
                distribution_area=row["distribution_area"],
                population_estimate=row.get("population_estimate"),
                competitor_brand=row.get("competitor_brand")
            )
            for row in record.area_coverage_details
            if row.get("distribution_area")
        ]
        application.history = [
            ApplicationHistory(
                status=ApplicationStatus.PENDING,
                notes="Application submitted",
                changed_by=SYSTEM_ACTOR,
                changed_at=utcnow()
            )
        ]

        self._applications.add(application)
        logger.info(
            "Application submitted: id=%s transactions=%d products=%d areas=%d",
            application.id,
            len(application.current_transactions),
            len(application.products_to_distribute),
            len(application.area_coverage_details)
        )
        return application

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, application_id: UUID, visible_to: Optional[str] = None) -> DistributorApplication:
        """
        Fetch one application aggregate.

        Args:
            visible_to: When set, the caller may only see applications they
                created or reviewed

        Raises:
            NotFoundError: Unknown id
            AuthorizationError: Outside the caller's visibility scope
        """
        application = self._applications.get_or_raise(application_id)
        if visible_to is not None and visible_to not in (
            application.created_by_id, application.reviewed_by_id
        ):
            raise AuthorizationError(
                "Access denied to this application",
                code="APPLICATION_ACCESS_DENIED"
            )
        return application

    def list(
        self,
        criteria: ApplicationFilter,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc"
    ) -> Tuple[List[DistributorApplication], int]:
        offset = (page - 1) * limit
        return self._applications.list(criteria, offset, limit, sort_by, sort_order)

    def stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Dashboard statistics.

        Returns:
            Dict with total, per-status counts, five most recent applications
            and monthly counts (YYYY-MM) over the last 12 months
        """
        now = _as_utc(now or utcnow())
        counts = self._applications.count_by_status()

        window_start = _month_start(now.year, now.month - 11)
        by_month: Dict[str, int] = {}
        for created_at in self._applications.created_timestamps_since(window_start):
            key = _as_utc(created_at).strftime("%Y-%m")
            by_month[key] = by_month.get(key, 0) + 1

        return {
            "total": sum(counts.values()),
            "by_status": {status.value: count for status, count in counts.items()},
            "recent": self._applications.recent(5),
            "by_month": [
                {"month": month, "count": by_month[month]} for month in sorted(by_month)
            ],
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_status(
        self,
        application_id: UUID,
        status: ApplicationStatus,
        reviewer_id: str,
        reviewer_name: str,
        review_notes: Optional[str] = None,
        visible_to: Optional[str] = None
    ) -> StatusChangeResult:
        """
        Move an application to a new status.

        Approval provisions the distributor account in the same session.
        Re-applying the current status writes nothing; for APPROVED the
        account is still ensured so a previously failed provisioning heals.

        Raises:
            NotFoundError: Unknown id
            AuthorizationError: Outside the caller's visibility scope
            ConflictError: Provisioning hit a uniqueness constraint
        """
        status = ApplicationStatus(status)
        application = self.get(application_id, visible_to=visible_to)

        provisioning = None
        if status == ApplicationStatus.APPROVED:
            provisioning = self._provisioning.ensure_account(application, approved_by=reviewer_id)

        if application.status == status:
            logger.info(
                "Status unchanged, nothing recorded: id=%s status=%s",
                application.id, status.value
            )
            return StatusChangeResult(application, changed=False, provisioning=provisioning)

        previous = application.status
        now = utcnow()
        application.status = status
        application.review_notes = review_notes
        application.reviewed_by_id = reviewer_id
        application.reviewed_by_name = reviewer_name
        application.reviewed_at = now
        application.history.append(ApplicationHistory(
            status=status,
            notes=review_notes or f"Status changed to {status.value}",
            changed_by=reviewer_name,
            changed_at=now
        ))
        self.session.flush()

        logger.info(
            "Application status changed: id=%s %s -> %s by=%s",
            application.id, previous.value, status.value, reviewer_id
        )
        return StatusChangeResult(application, changed=True, provisioning=provisioning)

    def cancel(self, application_id: UUID, actor_id: str, actor_name: str) -> DistributorApplication:
        """
        Withdraw a pending application (recorded as REJECTED).

        Raises:
            NotFoundError: Unknown id
            InvalidStateError: Application is no longer pending
        """
        application = self._applications.get_or_raise(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvalidStateError(
                "Only pending applications can be cancelled",
                code="CANNOT_DELETE_PROCESSED_APPLICATION"
            )

        now = utcnow()
        application.status = ApplicationStatus.REJECTED
        application.review_notes = "Application cancelled"
        application.reviewed_by_id = actor_id
        application.reviewed_by_name = actor_name
        application.reviewed_at = now
        application.history.append(ApplicationHistory(
            status=ApplicationStatus.REJECTED,
            notes="Application cancelled",
            changed_by=actor_name,
            changed_at=now
        ))
        self.session.flush()
        logger.info("Application cancelled: id=%s by=%s", application.id, actor_id)
        return application
