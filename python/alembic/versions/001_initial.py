"""Initial schema - Baseline migration

Revision ID: 001_initial
Revises:
Create Date: 2024-12-01 00:00:00.000000

Creates all tables for the Distributor Onboarding service. Runs on
PostgreSQL (native UUID and ENUM types) and SQLite.
For existing databases, use `alembic stamp 001_initial` to mark as applied.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'application_status': ('PENDING', 'UNDER_REVIEW', 'APPROVED', 'REJECTED', 'REQUIRES_CHANGES'),
    'user_role': ('ADMIN', 'SALES_MANAGER', 'SALES_REPRESENTATIVE', 'DISTRIBUTOR'),
    'profile_status': ('ACTIVE', 'INACTIVE', 'SUSPENDED'),
    'document_kind': ('citizenshipId', 'companyRegistration', 'panVatRegistration', 'officePhoto', 'areaMap'),
}


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == 'postgresql'


def _enum(name: str):
    # PostgreSQL types are created once up front; columns only reference them
    if _is_postgres():
        return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)
    return sa.Enum(*ENUMS[name], name=name)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    ]


def _child_fk():
    return sa.Column('application_id', sa.Uuid(),
                     sa.ForeignKey('distributor_applications.id', ondelete='CASCADE'),
                     nullable=False)


def upgrade() -> None:
    """Create initial database schema."""

    if _is_postgres():
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # Create distributor_applications table
    op.create_table(
        'distributor_applications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        # Personal details
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('age', sa.Integer()),
        sa.Column('gender', sa.String(20)),
        sa.Column('citizenship_number', sa.String(50)),
        sa.Column('issued_district', sa.String(50)),
        sa.Column('mobile_number', sa.String(20)),
        sa.Column('email', sa.String(255)),
        sa.Column('permanent_address', sa.String(200)),
        sa.Column('temporary_address', sa.String(200)),
        # Business details
        sa.Column('company_name', sa.String(100)),
        sa.Column('registration_number', sa.String(50)),
        sa.Column('pan_vat_number', sa.String(20)),
        sa.Column('office_address', sa.String(200)),
        sa.Column('operating_area', sa.String(100)),
        sa.Column('desired_distributor_area', sa.String(100)),
        sa.Column('current_business', sa.String(200)),
        sa.Column('business_type', sa.String(50)),
        # Staff and infrastructure
        sa.Column('sales_man_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sales_man_experience', sa.Text()),
        sa.Column('delivery_staff_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_staff_experience', sa.Text()),
        sa.Column('account_assistant_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('account_assistant_experience', sa.Text()),
        sa.Column('other_staff_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('other_staff_experience', sa.Text()),
        sa.Column('warehouse_space', sa.Float(), nullable=False, server_default='0'),
        sa.Column('warehouse_details', sa.Text()),
        sa.Column('truck_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('truck_details', sa.Text()),
        sa.Column('four_wheeler_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('four_wheeler_details', sa.Text()),
        sa.Column('two_wheeler_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('two_wheeler_details', sa.Text()),
        sa.Column('cycle_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cycle_details', sa.Text()),
        sa.Column('thela_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('thela_details', sa.Text()),
        # Business information
        sa.Column('product_category', sa.String(100)),
        sa.Column('years_in_business', sa.Integer()),
        sa.Column('monthly_sales', sa.String(50)),
        sa.Column('storage_facility', sa.String(200)),
        # Retailer requirements
        sa.Column('preferred_products', sa.String(200)),
        sa.Column('monthly_order_quantity', sa.String(50)),
        sa.Column('payment_preference', sa.String(50)),
        sa.Column('credit_days', sa.Integer()),
        sa.Column('delivery_preference', sa.String(50)),
        # Partnership details
        sa.Column('partner_full_name', sa.String(100)),
        sa.Column('partner_age', sa.Integer()),
        sa.Column('partner_gender', sa.String(20)),
        sa.Column('partner_citizenship_number', sa.String(50)),
        sa.Column('partner_issued_district', sa.String(50)),
        sa.Column('partner_mobile_number', sa.String(20)),
        sa.Column('partner_email', sa.String(255)),
        sa.Column('partner_permanent_address', sa.String(200)),
        sa.Column('partner_temporary_address', sa.String(200)),
        # Additional information
        sa.Column('additional_info1', sa.Text()),
        sa.Column('additional_info2', sa.Text()),
        sa.Column('additional_info3', sa.Text()),
        # Documents
        sa.Column('citizenship_id', sa.String(500)),
        sa.Column('company_registration', sa.String(500)),
        sa.Column('pan_vat_registration', sa.String(500)),
        sa.Column('office_photo', sa.String(500)),
        sa.Column('area_map', sa.String(500)),
        # Declaration and agreement
        sa.Column('declaration', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('signature', sa.String(100)),
        sa.Column('declaration_date', sa.String(30)),
        sa.Column('agreement_accepted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('distributor_signature_name', sa.String(100)),
        sa.Column('distributor_signature_date', sa.String(30)),
        # Review
        sa.Column('status', _enum('application_status'), nullable=False,
                  server_default='PENDING'),
        sa.Column('review_notes', sa.Text()),
        sa.Column('reviewed_by_id', sa.String(64)),
        sa.Column('reviewed_by_name', sa.String(100)),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('created_by_id', sa.String(64)),
        *_timestamps(),
    )

    # Create application child tables
    op.create_table(
        'current_transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _child_fk(),
        sa.Column('company', sa.String(100), nullable=False),
        sa.Column('products', sa.String(200), nullable=False),
        sa.Column('turnover', sa.String(50)),
    )

    op.create_table(
        'products_to_distribute',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _child_fk(),
        sa.Column('product_name', sa.String(100), nullable=False),
        sa.Column('monthly_sales_capacity', sa.String(50)),
    )

    op.create_table(
        'area_coverage_details',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _child_fk(),
        sa.Column('distribution_area', sa.String(100), nullable=False),
        sa.Column('population_estimate', sa.String(50)),
        sa.Column('competitor_brand', sa.String(100)),
    )

    op.create_table(
        'application_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _child_fk(),
        sa.Column('status', _enum('application_status'), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('changed_by', sa.String(100), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', _enum('user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('address', sa.String(200)),
        sa.Column('department', sa.String(100)),
        sa.Column('position', sa.String(100)),
        sa.Column('application_id', sa.Uuid(),
                  sa.ForeignKey('distributor_applications.id', ondelete='SET NULL')),
        *_timestamps(),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        # One account per application, even under concurrent approvals
        sa.UniqueConstraint('application_id', name='uq_users_application_id'),
    )

    op.create_table(
        'distributor_profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False, server_default=''),
        sa.Column('address', sa.String(200), nullable=False, server_default=''),
        sa.Column('national_id', sa.String(50), nullable=False, server_default=''),
        sa.Column('company_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('company_type', sa.String(50), nullable=False, server_default=''),
        sa.Column('registration_number', sa.String(50), nullable=False, server_default=''),
        sa.Column('pan_number', sa.String(20), nullable=False, server_default=''),
        sa.Column('vat_number', sa.String(20), nullable=False, server_default=''),
        sa.Column('company_address', sa.String(200), nullable=False, server_default=''),
        sa.Column('website', sa.String(200), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', _enum('profile_status'), nullable=False, server_default='ACTIVE'),
        sa.Column('created_by', sa.String(64)),
        sa.Column('approved_by', sa.String(64)),
        sa.Column('approved_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        'profile_documents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('profile_id', sa.Uuid(),
                  sa.ForeignKey('distributor_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', _enum('document_kind'), nullable=False),
        sa.Column('path', sa.String(500), nullable=False),
        sa.UniqueConstraint('profile_id', 'kind', name='uq_profile_document_kind'),
    )

    # Create catalog tables
    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('category_id', sa.Uuid(), sa.ForeignKey('categories.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(220), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(12, 2)),
        sa.Column('cost', sa.Numeric(12, 2)),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'distributor_categories',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('distributor_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('category_id', sa.Uuid(), sa.ForeignKey('categories.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('assigned_by', sa.String(64)),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('distributor_id', 'category_id', name='uq_distributor_category'),
    )

    # Create indexes
    op.create_index('ix_distributor_applications_full_name', 'distributor_applications', ['full_name'])
    op.create_index('ix_distributor_applications_citizenship_number', 'distributor_applications', ['citizenship_number'])
    op.create_index('ix_distributor_applications_email', 'distributor_applications', ['email'])
    op.create_index('ix_distributor_applications_company_name', 'distributor_applications', ['company_name'])
    op.create_index('ix_distributor_applications_status', 'distributor_applications', ['status'])
    op.create_index('ix_distributor_applications_reviewed_by_id', 'distributor_applications', ['reviewed_by_id'])
    op.create_index('ix_distributor_applications_created_by_id', 'distributor_applications', ['created_by_id'])
    op.create_index('ix_application_status_created', 'distributor_applications', ['status', 'created_at'])
    op.create_index('ix_current_transactions_application_id', 'current_transactions', ['application_id'])
    op.create_index('ix_products_to_distribute_application_id', 'products_to_distribute', ['application_id'])
    op.create_index('ix_area_coverage_details_application_id', 'area_coverage_details', ['application_id'])
    op.create_index('ix_application_history_application_id', 'application_history', ['application_id'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_profile_documents_profile_id', 'profile_documents', ['profile_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_distributor_categories_distributor_id', 'distributor_categories', ['distributor_id'])
    op.create_index('ix_distributor_categories_category_id', 'distributor_categories', ['category_id'])


def downgrade() -> None:
    """Drop all tables and types."""
    op.drop_table('distributor_categories')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('profile_documents')
    op.drop_table('distributor_profiles')
    op.drop_table('users')
    op.drop_table('application_history')
    op.drop_table('area_coverage_details')
    op.drop_table('products_to_distribute')
    op.drop_table('current_transactions')
    op.drop_table('distributor_applications')

    if _is_postgres():
        for name in reversed(list(ENUMS)):
            op.execute(f'DROP TYPE IF EXISTS {name}')
