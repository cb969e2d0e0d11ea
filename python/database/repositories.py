"""
Repository Pattern for Distributor Onboarding Database Operations

Provides a clean data access layer with proper typing and error handling.
Repositories only flush; committing is left to the Unit of Work that owns
the session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Dict, Tuple, Iterable
from uuid import UUID

from sqlalchemy import select, func, or_, and_
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from database.models import (
    DistributorApplication,
    ApplicationStatus,
    User,
    Category,
    Product,
    DistributorCategory,
)
from errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class DuplicateEntityError(ConflictError):
    """Raised when a write hits a uniqueness constraint."""
    pass


class EntityNotFoundError(NotFoundError):
    """Raised when an entity is not found."""
    pass


# Public sort keys -> mapped columns
APPLICATION_SORT_FIELDS = {
    "createdAt": DistributorApplication.created_at,
    "updatedAt": DistributorApplication.updated_at,
    "fullName": DistributorApplication.full_name,
    "companyName": DistributorApplication.company_name,
    "status": DistributorApplication.status,
    "reviewedAt": DistributorApplication.reviewed_at,
}


@dataclass
class ApplicationFilter:
    """Criteria for listing applications"""
    status: Optional[ApplicationStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    reviewed_by: Optional[str] = None
    # Restricts results to applications this principal created or reviewed
    visible_to: Optional[str] = None


def _flush(session: Session, what: str) -> None:
    try:
        session.flush()
    except IntegrityError as e:
        logger.warning("Integrity error while writing %s: %s", what, e.orig)
        raise DuplicateEntityError(f"{what} conflicts with an existing record") from e


# ============================================
# APPLICATION REPOSITORY
# ============================================

class ApplicationRepository:
    """Repository for distributor application aggregates."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, application: DistributorApplication) -> DistributorApplication:
        """Stage a new application together with its children and flush."""
        self.session.add(application)
        _flush(self.session, "application")
        logger.debug(f"Created application: {application.id} ({application.full_name})")
        return application

    def get_by_id(self, application_id: UUID) -> Optional[DistributorApplication]:
        # children and history load through selectin relationships
        return self.session.get(DistributorApplication, application_id)

    def get_or_raise(self, application_id: UUID) -> DistributorApplication:
        application = self.get_by_id(application_id)
        if application is None:
            raise EntityNotFoundError("Application not found", code="APPLICATION_NOT_FOUND")
        return application

    def _apply_filter(self, query, criteria: ApplicationFilter):
        A = DistributorApplication
        conditions = []

        if criteria.status is not None:
            conditions.append(A.status == criteria.status)
        if criteria.date_from is not None:
            conditions.append(A.created_at >= criteria.date_from)
        if criteria.date_to is not None:
            conditions.append(A.created_at <= criteria.date_to)
        if criteria.reviewed_by:
            conditions.append(A.reviewed_by_id == criteria.reviewed_by)
        if criteria.search:
            term = criteria.search.strip().lower()
            conditions.append(or_(
                func.lower(A.full_name).contains(term, autoescape=True),
                func.lower(A.company_name).contains(term, autoescape=True),
                func.lower(A.email).contains(term, autoescape=True),
                A.mobile_number.contains(criteria.search.strip(), autoescape=True),
                A.citizenship_number.contains(criteria.search.strip(), autoescape=True),
            ))
        if criteria.visible_to is not None:
            conditions.append(or_(
                A.created_by_id == criteria.visible_to,
                A.reviewed_by_id == criteria.visible_to,
            ))

        if conditions:
            query = query.where(and_(*conditions))
        return query

    def list(
        self,
        criteria: ApplicationFilter,
        offset: int = 0,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc"
    ) -> Tuple[List[DistributorApplication], int]:
        """
        List applications with filtering, sorting and pagination.

        Returns:
            Tuple of (applications, total matching count)

        Raises:
            ValidationError: If sort_by is not a sortable field
        """
        column = APPLICATION_SORT_FIELDS.get(sort_by)
        if column is None:
            raise ValidationError(
                f"Cannot sort by '{sort_by}'",
                code="INVALID_SORT_FIELD",
                errors={"sortBy": [f"Must be one of: {', '.join(APPLICATION_SORT_FIELDS)}"]}
            )
        ordering = column.asc() if sort_order == "asc" else column.desc()

        count_query = self._apply_filter(select(func.count(DistributorApplication.id)), criteria)
        total = self.session.execute(count_query).scalar_one()

        query = self._apply_filter(select(DistributorApplication), criteria)
        query = query.order_by(ordering, DistributorApplication.id).offset(offset).limit(limit)
        items = list(self.session.execute(query).scalars().all())
        return items, total

    def count_by_status(self) -> Dict[ApplicationStatus, int]:
        query = select(
            DistributorApplication.status,
            func.count(DistributorApplication.id)
        ).group_by(DistributorApplication.status)
        counts = {status: 0 for status in ApplicationStatus}
        for status, count in self.session.execute(query).all():
            counts[ApplicationStatus(status)] = count
        return counts

    def recent(self, limit: int = 5) -> List[DistributorApplication]:
        query = (
            select(DistributorApplication)
            .order_by(DistributorApplication.created_at.desc(), DistributorApplication.id)
            .limit(limit)
        )
        return list(self.session.execute(query).scalars().all())

    def created_timestamps_since(self, since: datetime) -> List[datetime]:
        query = select(DistributorApplication.created_at).where(
            DistributorApplication.created_at >= since
        )
        return list(self.session.execute(query).scalars().all())


# ============================================
# USER REPOSITORY
# ============================================

class UserRepository:
    """Repository for login accounts and their category assignments."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, user: User) -> User:
        self.session.add(user)
        _flush(self.session, "account")
        logger.debug(f"Created user: {user.id} ({user.username})")
        return user

    def get_by_id(self, user_id: UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_application_id(self, application_id: UUID) -> Optional[User]:
        query = select(User).where(User.application_id == application_id)
        return self.session.execute(query).scalar_one_or_none()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.session.execute(
            select(User).where(User.username == username)
        ).scalar_one_or_none()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()

    def username_taken(self, username: str, exclude_id: Optional[UUID] = None) -> bool:
        query = select(func.count(User.id)).where(User.username == username)
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return self.session.execute(query).scalar_one() > 0

    def find_login_conflict(
        self,
        username: str,
        email: str,
        exclude_id: Optional[UUID] = None
    ) -> Optional[User]:
        """Another account already using this username or email, if any."""
        query = select(User).where(or_(User.username == username, User.email == email))
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return self.session.execute(query.limit(1)).scalar_one_or_none()

    def replace_categories(
        self,
        user: User,
        categories: Iterable[Category],
        assigned_by: Optional[str]
    ) -> List[DistributorCategory]:
        """
        Delete every assignment of the user, then insert the given set.

        Flushes between the two steps so a category that is both removed and
        re-added does not trip the (distributor, category) unique key.
        """
        user.category_assignments.clear()
        _flush(self.session, "category assignments")

        for category in categories:
            user.category_assignments.append(
                DistributorCategory(category=category, assigned_by=assigned_by)
            )
        _flush(self.session, "category assignments")
        return list(user.category_assignments)


# ============================================
# CATEGORY REPOSITORY
# ============================================

class CategoryRepository:
    """Repository for product categories and their products."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, category: Category) -> Category:
        self.session.add(category)
        _flush(self.session, "category")
        return category

    def get_by_id(self, category_id: UUID) -> Optional[Category]:
        return self.session.get(Category, category_id)

    def get_many(self, category_ids: Iterable[UUID]) -> Dict[UUID, Category]:
        ids = list(category_ids)
        if not ids:
            return {}
        query = select(Category).where(Category.id.in_(ids))
        return {c.id: c for c in self.session.execute(query).scalars().all()}

    def list_with_product_counts(self, active_only: bool = True) -> List[Tuple[Category, int]]:
        product_count = (
            select(func.count(Product.id))
            .where(and_(Product.category_id == Category.id, Product.is_active == True))  # noqa: E712
            .correlate(Category)
            .scalar_subquery()
        )
        query = select(Category, product_count)
        if active_only:
            query = query.where(Category.is_active == True)  # noqa: E712
        query = query.order_by(Category.sort_order, Category.title)
        return [(category, count) for category, count in self.session.execute(query).all()]

    def active_products_in(self, category_ids: Iterable[UUID]) -> List[Product]:
        ids = list(category_ids)
        if not ids:
            return []
        query = (
            select(Product)
            .where(and_(Product.category_id.in_(ids), Product.is_active == True))  # noqa: E712
            .order_by(Product.sort_order, Product.title)
        )
        return list(self.session.execute(query).scalars().all())
