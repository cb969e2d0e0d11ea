"""
Shared fixtures: test configuration, in-memory database, intake records.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager
from database.application_service import ApplicationService, IntakeRecord
from database.connection import create_test_provider
from database.models import Category, Product


@pytest.fixture
def test_config(tmp_path) -> ConfigManager:
    """Fast bcrypt, no security log file, uploads under tmp_path."""
    return ConfigManager.create({
        'app': {'environment': 'test'},
        'provisioning': {'bcrypt_rounds': 4},
        'uploads': {'directory': str(tmp_path / 'uploads'), 'max_file_size_mb': 1},
        'notifications': {'enabled': True},
        'logging': {'security_log_file': False, 'console': False},
    })


@pytest.fixture
def db_provider():
    """Opened provider on a fresh in-memory SQLite database."""
    provider = create_test_provider()
    yield provider
    provider.drop_tables()
    provider.engine.dispose()


@pytest.fixture
def make_record():
    """Builder for IntakeRecord with sensible defaults."""
    def _make(full_name: str = "Ram Bahadur Thapa", **fields) -> IntakeRecord:
        base = {
            "full_name": full_name,
            "age": 35,
            "email": None,
            "mobile_number": "9800000000",
            "citizenship_number": "12-01-75-00123",
            "permanent_address": "Kathmandu-10",
            "company_name": "Thapa Traders",
            "pan_vat_number": "301234567",
            "desired_distributor_area": "Bagmati",
            "business_type": "Wholesale",
        }
        base.update(fields)
        return IntakeRecord(
            fields=base,
            current_transactions=[{"company": "ABC Foods", "products": "Noodles", "turnover": "1M"}],
            products_to_distribute=[{"product_name": "Biscuits", "monthly_sales_capacity": "500 cartons"}],
            area_coverage_details=[{"distribution_area": "Lalitpur", "population_estimate": "300k"}],
        )
    return _make


@pytest.fixture
def submit(db_provider, test_config, make_record):
    """Submit and commit an application; returns its id."""
    def _submit(record: IntakeRecord = None, documents=None, created_by_id=None):
        with db_provider.get_unit_of_work() as uow:
            application = ApplicationService(uow.session, test_config).submit(
                record or make_record(),
                documents=documents,
                created_by_id=created_by_id,
            )
            uow.commit()
            return application.id
    return _submit


@pytest.fixture
def categories(db_provider):
    """Two active categories (one with products) and one inactive; returns ids by slug."""
    with db_provider.get_unit_of_work() as uow:
        beverages = Category(title="Beverages", slug="beverages", sort_order=1)
        snacks = Category(title="Snacks", slug="snacks", sort_order=2)
        retired = Category(title="Retired", slug="retired", sort_order=3, is_active=False)
        beverages.products = [
            Product(title="Mango Juice", slug="mango-juice", stock_quantity=10),
            Product(title="Lemon Soda", slug="lemon-soda", stock_quantity=5),
            Product(title="Old Cola", slug="old-cola", is_active=False),
        ]
        uow.session.add_all([beverages, snacks, retired])
        uow.commit()
        return {c.slug: c.id for c in (beverages, snacks, retired)}
