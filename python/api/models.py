"""
Pydantic request/response schemas for the Distributor Onboarding API

JSON field names are camelCase on the wire and snake_case in Python
(alias_generator=to_camel). Request models flatten into the column names
used by database.application_service.IntakeRecord.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from credential_utils import MASKED_PASSWORD
from database.application_service import IntakeRecord
from database.models import ApplicationStatus, ProfileStatus, UserRole

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="ignore",
    )


def _optional_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value.lower()


# ============================================
# SUBMISSION
# ============================================

class PersonalDetails(CamelModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    age: Optional[int] = Field(default=None, ge=18, le=100)
    gender: Optional[str] = Field(default=None, max_length=20)
    citizenship_number: Optional[str] = Field(default=None, max_length=50)
    issued_district: Optional[str] = Field(default=None, max_length=50)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)
    permanent_address: Optional[str] = Field(default=None, max_length=200)
    temporary_address: Optional[str] = Field(default=None, max_length=200)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)


class BusinessDetails(CamelModel):
    company_name: Optional[str] = Field(default=None, max_length=100)
    registration_number: Optional[str] = Field(default=None, max_length=50)
    pan_vat_number: Optional[str] = Field(default=None, max_length=20)
    office_address: Optional[str] = Field(default=None, max_length=200)
    operating_area: Optional[str] = Field(default=None, max_length=100)
    desired_distributor_area: Optional[str] = Field(default=None, max_length=100)
    current_business: Optional[str] = Field(default=None, max_length=200)
    business_type: Optional[str] = Field(default=None, max_length=50)


class StaffInfrastructure(CamelModel):
    sales_man_count: int = Field(default=0, ge=0)
    sales_man_experience: Optional[str] = Field(default=None, max_length=500)
    delivery_staff_count: int = Field(default=0, ge=0)
    delivery_staff_experience: Optional[str] = Field(default=None, max_length=500)
    account_assistant_count: int = Field(default=0, ge=0)
    account_assistant_experience: Optional[str] = Field(default=None, max_length=500)
    other_staff_count: int = Field(default=0, ge=0)
    other_staff_experience: Optional[str] = Field(default=None, max_length=500)
    warehouse_space: float = Field(default=0, ge=0)
    warehouse_details: Optional[str] = Field(default=None, max_length=500)
    truck_count: int = Field(default=0, ge=0)
    truck_details: Optional[str] = Field(default=None, max_length=500)
    four_wheeler_count: int = Field(default=0, ge=0)
    four_wheeler_details: Optional[str] = Field(default=None, max_length=500)
    two_wheeler_count: int = Field(default=0, ge=0)
    two_wheeler_details: Optional[str] = Field(default=None, max_length=500)
    cycle_count: int = Field(default=0, ge=0)
    cycle_details: Optional[str] = Field(default=None, max_length=500)
    thela_count: int = Field(default=0, ge=0)
    thela_details: Optional[str] = Field(default=None, max_length=500)


class BusinessInformation(CamelModel):
    product_category: Optional[str] = Field(default=None, max_length=100)
    years_in_business: Optional[int] = Field(default=None, ge=0, le=100)
    monthly_sales: Optional[str] = Field(default=None, max_length=50)
    storage_facility: Optional[str] = Field(default=None, max_length=200)


class RetailerRequirements(CamelModel):
    preferred_products: Optional[str] = Field(default=None, max_length=200)
    monthly_order_quantity: Optional[str] = Field(default=None, max_length=50)
    payment_preference: Optional[str] = Field(default=None, max_length=50)
    credit_days: Optional[int] = Field(default=None, ge=0, le=365)
    delivery_preference: Optional[str] = Field(default=None, max_length=50)


class PartnershipDetails(CamelModel):
    partner_full_name: Optional[str] = Field(default=None, max_length=100)
    partner_age: Optional[int] = Field(default=None, ge=18, le=100)
    partner_gender: Optional[str] = Field(default=None, max_length=20)
    partner_citizenship_number: Optional[str] = Field(default=None, max_length=50)
    partner_issued_district: Optional[str] = Field(default=None, max_length=50)
    partner_mobile_number: Optional[str] = Field(default=None, max_length=20)
    partner_email: Optional[str] = Field(default=None, max_length=255)
    partner_permanent_address: Optional[str] = Field(default=None, max_length=200)
    partner_temporary_address: Optional[str] = Field(default=None, max_length=200)

    @field_validator('partner_email')
    @classmethod
    def validate_partner_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)


class AdditionalInformation(CamelModel):
    additional_info1: Optional[str] = None
    additional_info2: Optional[str] = None
    additional_info3: Optional[str] = None


class Declaration(CamelModel):
    declaration: bool = False
    signature: Optional[str] = Field(default=None, max_length=100)
    date: Optional[str] = Field(default=None, max_length=30)


class Agreement(CamelModel):
    agreement_accepted: bool = False
    distributor_signature_name: Optional[str] = Field(default=None, max_length=100)
    distributor_signature_date: Optional[str] = Field(default=None, max_length=30)


class CurrentTransactionIn(CamelModel):
    company: Optional[str] = Field(default=None, max_length=100)
    products: Optional[str] = Field(default=None, max_length=200)
    turnover: Optional[str] = Field(default=None, max_length=50)


class ProductToDistributeIn(CamelModel):
    product_name: Optional[str] = Field(default=None, max_length=100)
    monthly_sales_capacity: Optional[str] = Field(default=None, max_length=50)


class AreaCoverageIn(CamelModel):
    distribution_area: Optional[str] = Field(default=None, max_length=100)
    population_estimate: Optional[str] = Field(default=None, max_length=50)
    competitor_brand: Optional[str] = Field(default=None, max_length=100)


class ApplicationSubmission(CamelModel):
    """Full onboarding submission as sent by the application form."""
    personal_details: Optional[PersonalDetails] = None
    business_details: BusinessDetails = Field(default_factory=BusinessDetails)
    staff_infrastructure: StaffInfrastructure = Field(default_factory=StaffInfrastructure)
    business_information: BusinessInformation = Field(default_factory=BusinessInformation)
    retailer_requirements: RetailerRequirements = Field(default_factory=RetailerRequirements)
    partnership_details: Optional[PartnershipDetails] = None
    additional_information: Optional[AdditionalInformation] = None
    declaration: Declaration = Field(default_factory=Declaration)
    agreement: Agreement = Field(default_factory=Agreement)
    current_transactions: List[CurrentTransactionIn] = Field(default_factory=list, max_length=6)
    products_to_distribute: List[ProductToDistributeIn] = Field(default_factory=list, max_length=10)
    area_coverage_details: List[AreaCoverageIn] = Field(default_factory=list, max_length=9)

    def to_intake_record(self) -> IntakeRecord:
        """Flatten the sections into application column values."""
        fields: Dict[str, Any] = {}
        sections = (
            self.personal_details,
            self.business_details,
            self.staff_infrastructure,
            self.business_information,
            self.retailer_requirements,
            self.partnership_details,
            self.additional_information,
            self.agreement,
        )
        for section in sections:
            if section is not None:
                fields.update(section.model_dump())

        fields["declaration"] = self.declaration.declaration
        fields["signature"] = self.declaration.signature
        fields["declaration_date"] = self.declaration.date
        fields.setdefault("full_name", None)

        return IntakeRecord(
            fields=fields,
            current_transactions=[row.model_dump() for row in self.current_transactions],
            products_to_distribute=[row.model_dump() for row in self.products_to_distribute],
            area_coverage_details=[row.model_dump() for row in self.area_coverage_details],
        )


# ============================================
# OTHER REQUESTS
# ============================================

class StatusUpdateRequest(CamelModel):
    status: ApplicationStatus
    review_notes: Optional[str] = Field(default=None, max_length=1000)


class CredentialsRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=255)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    categories: List[UUID] = Field(default_factory=list)

    @field_validator('username', mode='before')
    @classmethod
    def strip_username(cls, v: Any) -> Any:
        # length limits apply to the stored value
        return v.strip() if isinstance(v, str) else v

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not re.match(r'^[A-Za-z0-9_.-]+$', v):
            raise ValueError("Username may only contain letters, digits, '_', '.' and '-'")
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        email = _optional_email(v)
        if email is None:
            raise ValueError("Email is required")
        return email

    @field_validator('password', mode='before')
    @classmethod
    def blank_password_means_unchanged(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CategoryCreateRequest(CamelModel):
    title: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = None
    sort_order: int = 0


# ============================================
# RESPONSES
# ============================================

class HistoryEntryOut(CamelModel):
    status: ApplicationStatus
    notes: Optional[str] = None
    changed_by: str
    changed_at: datetime


class CurrentTransactionOut(CamelModel):
    id: UUID
    company: str
    products: str
    turnover: Optional[str] = None


class ProductToDistributeOut(CamelModel):
    id: UUID
    product_name: str
    monthly_sales_capacity: Optional[str] = None


class AreaCoverageOut(CamelModel):
    id: UUID
    distribution_area: str
    population_estimate: Optional[str] = None
    competitor_brand: Optional[str] = None


class ApplicationSummaryOut(CamelModel):
    """Row shape for list and dashboard views."""
    id: UUID
    full_name: str
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    company_name: Optional[str] = None
    desired_distributor_area: Optional[str] = None
    business_type: Optional[str] = None
    status: ApplicationStatus
    reviewed_by_name: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class ApplicationOut(ApplicationSummaryOut):
    """Full application aggregate."""
    age: Optional[int] = None
    gender: Optional[str] = None
    citizenship_number: Optional[str] = None
    issued_district: Optional[str] = None
    permanent_address: Optional[str] = None
    temporary_address: Optional[str] = None
    registration_number: Optional[str] = None
    pan_vat_number: Optional[str] = None
    office_address: Optional[str] = None
    operating_area: Optional[str] = None
    current_business: Optional[str] = None
    sales_man_count: int = 0
    sales_man_experience: Optional[str] = None
    delivery_staff_count: int = 0
    delivery_staff_experience: Optional[str] = None
    account_assistant_count: int = 0
    account_assistant_experience: Optional[str] = None
    other_staff_count: int = 0
    other_staff_experience: Optional[str] = None
    warehouse_space: float = 0
    warehouse_details: Optional[str] = None
    truck_count: int = 0
    truck_details: Optional[str] = None
    four_wheeler_count: int = 0
    four_wheeler_details: Optional[str] = None
    two_wheeler_count: int = 0
    two_wheeler_details: Optional[str] = None
    cycle_count: int = 0
    cycle_details: Optional[str] = None
    thela_count: int = 0
    thela_details: Optional[str] = None
    product_category: Optional[str] = None
    years_in_business: Optional[int] = None
    monthly_sales: Optional[str] = None
    storage_facility: Optional[str] = None
    preferred_products: Optional[str] = None
    monthly_order_quantity: Optional[str] = None
    payment_preference: Optional[str] = None
    credit_days: Optional[int] = None
    delivery_preference: Optional[str] = None
    partner_full_name: Optional[str] = None
    partner_age: Optional[int] = None
    partner_gender: Optional[str] = None
    partner_citizenship_number: Optional[str] = None
    partner_issued_district: Optional[str] = None
    partner_mobile_number: Optional[str] = None
    partner_email: Optional[str] = None
    partner_permanent_address: Optional[str] = None
    partner_temporary_address: Optional[str] = None
    additional_info1: Optional[str] = None
    additional_info2: Optional[str] = None
    additional_info3: Optional[str] = None
    citizenship_id: Optional[str] = None
    company_registration: Optional[str] = None
    pan_vat_registration: Optional[str] = None
    office_photo: Optional[str] = None
    area_map: Optional[str] = None
    declaration: bool = False
    signature: Optional[str] = None
    declaration_date: Optional[str] = None
    agreement_accepted: bool = False
    distributor_signature_name: Optional[str] = None
    distributor_signature_date: Optional[str] = None
    review_notes: Optional[str] = None
    updated_at: datetime
    current_transactions: List[CurrentTransactionOut] = Field(default_factory=list)
    products_to_distribute: List[ProductToDistributeOut] = Field(default_factory=list)
    area_coverage_details: List[AreaCoverageOut] = Field(default_factory=list)
    history: List[HistoryEntryOut] = Field(default_factory=list)


class ProfileOut(CamelModel):
    first_name: str
    last_name: str
    phone_number: str = ""
    address: str = ""
    national_id: str = ""
    company_name: str = ""
    company_type: str = ""
    registration_number: str = ""
    pan_number: str = ""
    vat_number: str = ""
    company_address: str = ""
    website: str = ""
    description: str = ""
    status: ProfileStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    documents: Dict[str, str] = Field(default_factory=dict)

    @field_validator('documents', mode='before')
    @classmethod
    def documents_as_map(cls, v: Any) -> Any:
        # ORM side is a list of ProfileDocument rows
        if isinstance(v, (list, tuple)):
            return {getattr(doc.kind, "value", doc.kind): doc.path for doc in v}
        return v


class DistributorOut(CamelModel):
    id: UUID
    username: str
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    is_verified: bool
    application_id: Optional[UUID] = None
    profile: Optional[ProfileOut] = None
    created_at: datetime


class CategoryRef(CamelModel):
    id: UUID
    title: str
    slug: str


class CredentialsOut(CamelModel):
    id: UUID
    username: str
    email: str
    password: str = MASKED_PASSWORD
    is_active: bool
    categories: List[CategoryRef] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user) -> 'CredentialsOut':
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            is_active=user.is_active,
            categories=[CategoryRef.model_validate(a.category) for a in user.category_assignments],
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class CategoryOut(CamelModel):
    id: UUID
    title: str
    slug: str
    description: Optional[str] = None
    is_active: bool
    sort_order: int
    product_count: int = 0


class ProductOut(CamelModel):
    id: UUID
    category_id: UUID
    title: str
    slug: str
    description: Optional[str] = None
    price: Optional[float] = None
    stock_quantity: int = 0
    is_active: bool


class MonthlyCount(CamelModel):
    month: str
    count: int


class ApplicationStatsOut(CamelModel):
    total: int
    by_status: Dict[str, int]
    recent: List[ApplicationSummaryOut]
    by_month: List[MonthlyCount]


class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> 'PaginationMeta':
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ApiResponse(CamelModel):
    """Uniform response envelope."""
    success: bool = True
    message: str
    data: Optional[Any] = None
    pagination: Optional[PaginationMeta] = None


class ErrorResponse(CamelModel):
    """Error envelope (documentation only; built in api/middleware.py)."""
    success: bool = False
    message: str
    error: str
    errors: Optional[Dict[str, List[str]]] = None
    debug: Optional[Dict[str, Any]] = None


class HealthResponse(CamelModel):
    status: str
    database: str
    version: str
    environment: str
    uptime_seconds: Optional[int] = None


def dump(model: BaseModel) -> Dict[str, Any]:
    """Serialize to JSON-safe camelCase dict."""
    return model.model_dump(by_alias=True, mode="json")
