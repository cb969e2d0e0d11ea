"""
Database Package for the Distributor Onboarding service

This package provides:
- SQLAlchemy ORM models for applications, accounts and catalogue
- Session provider and Unit of Work for transaction management
- Repository pattern for data access
- Services for intake/review, provisioning, credentials and categories
- Alembic integration for migrations
"""

from database.models import (
    Base,
    ApplicationStatus,
    UserRole,
    ProfileStatus,
    DocumentKind,
    DistributorApplication,
    CurrentTransaction,
    ProductToDistribute,
    AreaCoverageDetail,
    ApplicationHistory,
    User,
    DistributorProfile,
    ProfileDocument,
    Category,
    Product,
    DistributorCategory,
)
from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    UnitOfWork,
    # Testing support
    create_sqlite_memory_engine,
    create_test_provider,
)
from database.application_service import (
    ApplicationService,
    IntakeRecord,
    StatusChangeResult,
)
from database.provisioning_service import ProvisioningService, ProvisioningResult
from database.credential_service import CredentialService, CredentialUpdate
from database.category_service import CategoryService

__all__ = [
    # Base
    'Base',
    # Enums
    'ApplicationStatus',
    'UserRole',
    'ProfileStatus',
    'DocumentKind',
    # Application aggregate
    'DistributorApplication',
    'CurrentTransaction',
    'ProductToDistribute',
    'AreaCoverageDetail',
    'ApplicationHistory',
    # Accounts
    'User',
    'DistributorProfile',
    'ProfileDocument',
    # Catalogue
    'Category',
    'Product',
    'DistributorCategory',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'UnitOfWork',
    # Testing support
    'create_sqlite_memory_engine',
    'create_test_provider',
    # Services
    'ApplicationService',
    'IntakeRecord',
    'StatusChangeResult',
    'ProvisioningService',
    'ProvisioningResult',
    'CredentialService',
    'CredentialUpdate',
    'CategoryService',
]
