"""
Distributor account provisioning.

Turns an approved application into exactly one DISTRIBUTOR account with a
business profile. Runs inside the caller's Unit of Work so the account and
the status change commit or roll back together.

Idempotency has two layers:
- a lookup by application_id short-circuits repeat approvals
- the UNIQUE constraint on users.application_id rejects a concurrent
  second insert, which surfaces here as DuplicateEntityError
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from config_manager import ProvisioningConfig
from credential_utils import (
    derive_username,
    generate_password,
    hash_password,
    split_full_name,
)
from database.models import (
    DistributorApplication,
    DistributorProfile,
    ProfileDocument,
    ProfileStatus,
    User,
    UserRole,
    PROFILE_DOCUMENT_KINDS,
    utcnow,
)
from database.repositories import UserRepository
from errors import ConflictError

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningResult:
    """Outcome of ensure_account.

    password holds the generated plain-text password only when the
    account was created by this call; it is handed to the approval email
    and never persisted or returned by the API.
    """
    user: User
    created: bool
    password: Optional[str] = None


class ProvisioningService:
    """Creates distributor accounts from approved applications."""

    def __init__(self, session: Session, config: Optional[ProvisioningConfig] = None):
        self.session = session
        self.config = config or ProvisioningConfig()
        self._users = UserRepository(session)

    def ensure_account(
        self,
        application: DistributorApplication,
        approved_by: Optional[str] = None
    ) -> ProvisioningResult:
        """
        Return the application's account, creating it if none exists.

        Args:
            application: The application being approved
            approved_by: Reviewer id stamped on the profile

        Raises:
            ConflictError: Email already belongs to another account, or a
                concurrent approval created the account first
        """
        existing = self._users.get_by_application_id(application.id)
        if existing is not None:
            logger.info(
                "Account already provisioned: application=%s user=%s",
                application.id, existing.id
            )
            return ProvisioningResult(user=existing, created=False)

        username = derive_username(
            application.id,
            self._users.username_taken,
            prefix=self.config.username_prefix
        )
        email = application.email or f"{username}@{self.config.email_domain}"

        owner = self._users.get_by_email(email)
        if owner is not None:
            raise ConflictError(
                f"Email {email} is already registered to another account",
                code="EMAIL_ALREADY_REGISTERED",
                errors={"email": ["Already registered"]}
            )

        password = generate_password(self.config.password_length)
        user = User(
            username=username,
            email=email,
            full_name=application.full_name,
            password_hash=hash_password(password, self.config.bcrypt_rounds),
            role=UserRole.DISTRIBUTOR,
            is_active=True,
            is_verified=True,
            address=application.permanent_address or "",
            department="Distributor",
            position="Distributor",
            application_id=application.id,
        )
        user.profile = self._build_profile(application, approved_by)

        self._users.add(user)
        logger.info(
            "Provisioned distributor account: application=%s user=%s username=%s",
            application.id, user.id, username
        )
        return ProvisioningResult(user=user, created=True, password=password)

    def _build_profile(
        self,
        application: DistributorApplication,
        approved_by: Optional[str]
    ) -> DistributorProfile:
        first_name, last_name = split_full_name(application.full_name)
        pan_vat = application.pan_vat_number or ""

        profile = DistributorProfile(
            first_name=first_name,
            last_name=last_name,
            phone_number=application.mobile_number or "",
            address=application.permanent_address or "",
            national_id=application.citizenship_number or "",
            company_name=application.company_name or "",
            company_type=application.business_type or "",
            registration_number=application.registration_number or "",
            pan_number=pan_vat,
            vat_number=pan_vat,
            company_address=application.office_address or "",
            website="",
            description=f"Distributor for {application.desired_distributor_area or ''}".strip(),
            status=ProfileStatus.ACTIVE,
            created_by=approved_by,
            approved_by=approved_by,
            approved_at=utcnow(),
        )

        paths = application.document_paths()
        for kind in PROFILE_DOCUMENT_KINDS:
            if kind in paths:
                profile.documents.append(ProfileDocument(kind=kind, path=paths[kind]))
        return profile
