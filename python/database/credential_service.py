"""
Credential and category management for distributor accounts.

Every method runs in the caller's Unit of Work. save_credentials rewrites
login fields and the category set together, so a failure part way leaves
both untouched once the caller rolls back.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from config_manager import ProvisioningConfig
from credential_utils import generate_password, hash_password, random_username
from database.models import Category, ProfileStatus, User, UserRole
from database.repositories import CategoryRepository, UserRepository
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class CredentialUpdate:
    username: str
    email: str
    password: Optional[str] = None
    categories: Sequence[UUID] = ()


class CredentialService:
    """Fetch, replace and reset distributor credentials; toggle activation."""

    def __init__(self, session: Session, config: Optional[ProvisioningConfig] = None):
        self.session = session
        self.config = config or ProvisioningConfig()
        self._users = UserRepository(session)
        self._categories = CategoryRepository(session)

    def _get_distributor(self, distributor_id: UUID) -> User:
        user = self._users.get_by_id(distributor_id)
        if user is None:
            raise NotFoundError("Distributor not found", code="DISTRIBUTOR_NOT_FOUND")
        if user.role != UserRole.DISTRIBUTOR:
            raise ValidationError("User is not a distributor", code="INVALID_USER_TYPE")
        return user

    def get_credentials(self, distributor_id: UUID) -> User:
        """Return the distributor account; callers render the password masked."""
        return self._get_distributor(distributor_id)

    def save_credentials(
        self,
        distributor_id: UUID,
        update: CredentialUpdate,
        assigned_by: Optional[str] = None
    ) -> User:
        """
        Replace login fields and the full category assignment set.

        Raises:
            NotFoundError: Unknown distributor
            ValidationError: Not a distributor, or unknown category ids
            ConflictError: Username or email used by another account
        """
        user = self._get_distributor(distributor_id)

        conflict = self._users.find_login_conflict(update.username, update.email, exclude_id=user.id)
        if conflict is not None:
            field = "username" if conflict.username == update.username else "email"
            raise ConflictError(
                "Username or email already in use",
                code="CREDENTIALS_ALREADY_EXISTS",
                errors={field: ["Already in use by another account"]}
            )

        # de-duplicate, keep request order
        wanted: List[UUID] = list(dict.fromkeys(update.categories))
        found = self._categories.get_many(wanted)
        missing = [str(cid) for cid in wanted if cid not in found]
        if missing:
            raise ValidationError(
                "Unknown category ids",
                code="INVALID_CATEGORIES",
                errors={"categories": [f"Unknown: {', '.join(missing)}"]}
            )
        categories: List[Category] = [found[cid] for cid in wanted]

        user.username = update.username
        user.email = update.email
        if update.password:
            user.password_hash = hash_password(update.password, self.config.bcrypt_rounds)

        self._users.replace_categories(user, categories, assigned_by)
        logger.info(
            "Credentials saved: distributor=%s categories=%d password_changed=%s",
            user.id, len(categories), bool(update.password)
        )
        return user

    def reset_credentials(self, distributor_id: UUID) -> User:
        """Replace username and password with fresh random values.

        Category assignments are left as they are.
        """
        user = self._get_distributor(distributor_id)

        username = random_username(self.config.username_prefix)
        while self._users.username_taken(username, exclude_id=user.id):
            username = random_username(self.config.username_prefix)

        user.username = username
        user.password_hash = hash_password(
            generate_password(self.config.password_length),
            self.config.bcrypt_rounds
        )
        self.session.flush()
        logger.info("Credentials reset: distributor=%s", user.id)
        return user

    def set_active(self, distributor_id: UUID, active: bool) -> User:
        """
        Activate or deactivate a distributor. Not idempotent: asking for the
        state the account is already in is an error.

        Raises:
            InvalidStateError: Already in the requested state
        """
        user = self._get_distributor(distributor_id)
        if user.is_active == active:
            raise InvalidStateError(
                "Distributor is already active" if active else "Distributor is already inactive",
                code="USER_ALREADY_ACTIVE" if active else "USER_ALREADY_INACTIVE"
            )

        user.is_active = active
        if user.profile is not None:
            user.profile.status = ProfileStatus.ACTIVE if active else ProfileStatus.INACTIVE
        self.session.flush()
        logger.info("Distributor %s: id=%s", "activated" if active else "deactivated", user.id)
        return user

    def find_by_application(self, application_id: UUID) -> User:
        """
        Raises:
            NotFoundError: No account was provisioned from this application
        """
        user = self._users.get_by_application_id(application_id)
        if user is None:
            raise NotFoundError(
                "No distributor account for this application",
                code="USER_NOT_FOUND"
            )
        return user

    def assigned_products(self, distributor_id: UUID):
        """Active products in the distributor's assigned active categories."""
        user = self._get_distributor(distributor_id)
        category_ids = [
            a.category_id for a in user.category_assignments if a.category.is_active
        ]
        return self._categories.active_products_in(category_ids)
