"""Reference data: product categories."""

import logging
import re
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from database.models import Category
from database.repositories import CategoryRepository
from errors import ValidationError

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug


class CategoryService:

    def __init__(self, session: Session):
        self.session = session
        self._categories = CategoryRepository(session)

    def list(self, active_only: bool = True) -> List[Tuple[Category, int]]:
        """Categories with their active product counts, in display order."""
        return self._categories.list_with_product_counts(active_only=active_only)

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        slug: Optional[str] = None,
        sort_order: int = 0
    ) -> Category:
        """
        Raises:
            ValidationError: Title produces an empty slug
            ConflictError: Slug already used
        """
        slug = slugify(slug or title)
        if not slug:
            raise ValidationError(
                "Category title must contain letters or digits",
                errors={"title": ["Invalid title"]}
            )
        category = self._categories.add(Category(
            title=title.strip(),
            slug=slug,
            description=description,
            sort_order=sort_order,
            is_active=True
        ))
        logger.info("Category created: id=%s slug=%s", category.id, slug)
        return category
