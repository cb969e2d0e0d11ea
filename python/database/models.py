"""
SQLAlchemy ORM Models for the Distributor Onboarding Service

This module defines the database schema:
- UUID primary keys (generic Uuid type, native on PostgreSQL)
- Timestamps for all records (created_at, updated_at)
- Cascading child collections owned by their aggregate root
- Storage-level uniqueness where the workflow depends on it

Tables:
1. distributor_applications - Onboarding submission (aggregate root)
2. current_transactions - Applicant's current trading relationships
3. products_to_distribute - Products the applicant intends to carry
4. area_coverage_details - Distribution areas the applicant covers
5. application_history - Append-only status change log
6. users - Staff and distributor login accounts
7. distributor_profiles - Business profile of a distributor account
8. profile_documents - Typed document references on a profile
9. categories - Product categories
10. products - Catalog products within a category
11. distributor_categories - Categories a distributor may sell
"""

import uuid
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    String, Integer, Float, Boolean, DateTime, Text, Numeric,
    ForeignKey, Index, UniqueConstraint, Enum, Uuid
)
from sqlalchemy.orm import relationship, declarative_base, Mapped, mapped_column
from sqlalchemy.sql import func

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ENUMS
# ============================================

class ApplicationStatus(str, PyEnum):
    """Review status of a distributor application"""
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REQUIRES_CHANGES = "REQUIRES_CHANGES"


class UserRole(str, PyEnum):
    """Closed set of account roles"""
    ADMIN = "ADMIN"
    SALES_MANAGER = "SALES_MANAGER"
    SALES_REPRESENTATIVE = "SALES_REPRESENTATIVE"
    DISTRIBUTOR = "DISTRIBUTOR"


class ProfileStatus(str, PyEnum):
    """Operational status of a distributor profile"""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class DocumentKind(str, PyEnum):
    """Document slots accepted on intake and copied onto profiles"""
    CITIZENSHIP_ID = "citizenshipId"
    COMPANY_REGISTRATION = "companyRegistration"
    PAN_VAT_REGISTRATION = "panVatRegistration"
    OFFICE_PHOTO = "officePhoto"
    AREA_MAP = "areaMap"


# Documents that carry over from an approved application to the profile
PROFILE_DOCUMENT_KINDS = (
    DocumentKind.CITIZENSHIP_ID,
    DocumentKind.COMPANY_REGISTRATION,
    DocumentKind.PAN_VAT_REGISTRATION,
)


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )


# ============================================
# APPLICATION AGGREGATE
# ============================================

class DistributorApplication(Base, TimestampMixin):
    """
    A distributor onboarding submission.

    Owns its transaction, product and area-coverage rows and its status
    history; none of them have a lifecycle of their own.
    """
    __tablename__ = "distributor_applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Personal details
    full_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    citizenship_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    issued_district: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    mobile_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    permanent_address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    temporary_address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Business details
    company_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    registration_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pan_vat_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    office_address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    operating_area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    desired_distributor_area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    current_business: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    business_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Staff and infrastructure
    sales_man_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sales_man_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_staff_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivery_staff_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    account_assistant_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    account_assistant_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    other_staff_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    other_staff_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    warehouse_space: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    warehouse_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    truck_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    truck_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    four_wheeler_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    four_wheeler_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    two_wheeler_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    two_wheeler_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cycle_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cycle_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thela_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    thela_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Business information
    product_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    years_in_business: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    monthly_sales: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    storage_facility: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Retailer requirements
    preferred_products: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    monthly_order_quantity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_preference: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    credit_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    delivery_preference: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Partnership details (optional section)
    partner_full_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    partner_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    partner_gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    partner_citizenship_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partner_issued_district: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partner_mobile_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    partner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    partner_permanent_address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    partner_temporary_address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Additional information
    additional_info1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    additional_info2: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    additional_info3: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Uploaded documents (opaque storage paths)
    citizenship_id: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    company_registration: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    pan_vat_registration: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    office_photo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    area_map: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Declaration and agreement
    declaration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    signature: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    declaration_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    agreement_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    distributor_signature_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    distributor_signature_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Review
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        default=ApplicationStatus.PENDING,
        nullable=False,
        index=True
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    reviewed_by_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Relationships
    current_transactions: Mapped[List["CurrentTransaction"]] = relationship(
        "CurrentTransaction",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    products_to_distribute: Mapped[List["ProductToDistribute"]] = relationship(
        "ProductToDistribute",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    area_coverage_details: Mapped[List["AreaCoverageDetail"]] = relationship(
        "AreaCoverageDetail",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    history: Mapped[List["ApplicationHistory"]] = relationship(
        "ApplicationHistory",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by=lambda: [ApplicationHistory.changed_at, ApplicationHistory.id],
        lazy="selectin"
    )

    __table_args__ = (
        Index('ix_application_status_created', 'status', 'created_at'),
    )

    def document_paths(self) -> dict:
        """Map of document kind -> stored path for the slots that are filled."""
        values = {
            DocumentKind.CITIZENSHIP_ID: self.citizenship_id,
            DocumentKind.COMPANY_REGISTRATION: self.company_registration,
            DocumentKind.PAN_VAT_REGISTRATION: self.pan_vat_registration,
            DocumentKind.OFFICE_PHOTO: self.office_photo,
            DocumentKind.AREA_MAP: self.area_map,
        }
        return {kind: path for kind, path in values.items() if path}

    def __repr__(self) -> str:
        return f"<DistributorApplication(id={self.id}, name='{self.full_name}', status={self.status})>"


class CurrentTransaction(Base):
    """A company the applicant currently trades with."""
    __tablename__ = "current_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("distributor_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    company: Mapped[str] = mapped_column(String(100), nullable=False)
    products: Mapped[str] = mapped_column(String(200), nullable=False)
    turnover: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    application: Mapped["DistributorApplication"] = relationship(
        "DistributorApplication",
        back_populates="current_transactions"
    )


class ProductToDistribute(Base):
    """A product the applicant intends to distribute."""
    __tablename__ = "products_to_distribute"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("distributor_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_name: Mapped[str] = mapped_column(String(100), nullable=False)
    monthly_sales_capacity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    application: Mapped["DistributorApplication"] = relationship(
        "DistributorApplication",
        back_populates="products_to_distribute"
    )


class AreaCoverageDetail(Base):
    """A distribution area covered by the applicant."""
    __tablename__ = "area_coverage_details"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("distributor_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    distribution_area: Mapped[str] = mapped_column(String(100), nullable=False)
    population_estimate: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    competitor_brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    application: Mapped["DistributorApplication"] = relationship(
        "DistributorApplication",
        back_populates="area_coverage_details"
    )


class ApplicationHistory(Base):
    """
    Append-only record of a status change.

    Integer key so entries written within the same clock tick still sort
    in insertion order.
    """
    __tablename__ = "application_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("distributor_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    application: Mapped["DistributorApplication"] = relationship(
        "DistributorApplication",
        back_populates="history"
    )

    def __repr__(self) -> str:
        return f"<ApplicationHistory(application_id={self.application_id}, status={self.status})>"


# ============================================
# ACCOUNT MODELS
# ============================================

class User(Base, TimestampMixin):
    """
    Login account. Distributor accounts are created by provisioning and
    point back at the application they were created from; the UNIQUE
    constraint on application_id is what keeps provisioning one-to-one
    under concurrent approvals.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    application_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("distributor_applications.id", ondelete="SET NULL"),
        nullable=True
    )

    profile: Mapped[Optional["DistributorProfile"]] = relationship(
        "DistributorProfile",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin"
    )
    category_assignments: Mapped[List["DistributorCategory"]] = relationship(
        "DistributorCategory",
        back_populates="distributor",
        cascade="all, delete-orphan",
        foreign_keys="DistributorCategory.distributor_id",
        lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint('username', name='uq_users_username'),
        UniqueConstraint('email', name='uq_users_email'),
        UniqueConstraint('application_id', name='uq_users_application_id'),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"


class DistributorProfile(Base, TimestampMixin):
    """Business profile attached one-to-one to a distributor account."""
    __tablename__ = "distributor_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    address: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    national_id: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    company_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    company_type: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    registration_number: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    pan_number: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    vat_number: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    company_address: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    website: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[ProfileStatus] = mapped_column(
        Enum(ProfileStatus, name="profile_status"),
        default=ProfileStatus.ACTIVE,
        nullable=False
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="profile")
    documents: Mapped[List["ProfileDocument"]] = relationship(
        "ProfileDocument",
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def document_map(self) -> dict:
        return {doc.kind.value: doc.path for doc in self.documents}


class ProfileDocument(Base):
    """One document reference on a distributor profile."""
    __tablename__ = "profile_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("distributor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    kind: Mapped[DocumentKind] = mapped_column(
        Enum(DocumentKind, name="document_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    path: Mapped[str] = mapped_column(String(500), nullable=False)

    profile: Mapped["DistributorProfile"] = relationship(
        "DistributorProfile",
        back_populates="documents"
    )

    __table_args__ = (
        UniqueConstraint('profile_id', 'kind', name='uq_profile_document_kind'),
    )


# ============================================
# CATALOG MODELS
# ============================================

class Category(Base, TimestampMixin):
    """Product category a distributor can be authorized to sell."""
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    products: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="category",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}')>"


class Product(Base, TimestampMixin):
    """Catalog product within a category."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    category: Mapped["Category"] = relationship("Category", back_populates="products")


class DistributorCategory(Base):
    """Assignment of a category to a distributor account."""
    __tablename__ = "distributor_categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    distributor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    assigned_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    distributor: Mapped["User"] = relationship(
        "User",
        back_populates="category_assignments",
        foreign_keys=[distributor_id]
    )
    category: Mapped["Category"] = relationship("Category", lazy="selectin")

    __table_args__ = (
        UniqueConstraint('distributor_id', 'category_id', name='uq_distributor_category'),
    )
