"""initial_schema

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-17 09:12:31.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

pipeline_stage = sa.Enum(
    'TAM', 'ACTIVE_SEGMENT', 'QUALIFIED', 'READY_TO_APPROACH', 'IN_SEQUENCE', 'CONVERTED',
    name='pipelinestage',
)
job_type = sa.Enum(
    'DISCOVER', 'BUILD_FUNNEL', 'REFRESH_FUNNEL', 'COMPANY_SIGNALS', 'PERSONA_SIGNALS',
    name='jobtype',
)
job_status = sa.Enum('PENDING', 'RUNNING', 'COMPLETED', 'FAILED', 'CANCELLED', name='jobstatus')


def upgrade() -> None:
    """Upgrade schema: clients, companies, contacts, signals, funnels, jobs, source metrics."""
    op.create_table('clients',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('product_keywords', sa.JSON(), nullable=True),
    sa.Column('product_description', sa.Text(), nullable=True),
    sa.Column('strategy', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )

    op.create_table('companies',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('domain', sa.String(length=255), nullable=True),
    sa.Column('linkedin_url', sa.String(length=500), nullable=True),
    sa.Column('website_url', sa.String(length=500), nullable=True),
    sa.Column('external_ids', sa.JSON(), nullable=True),
    sa.Column('industry', sa.String(length=255), nullable=True),
    sa.Column('sub_industry', sa.String(length=255), nullable=True),
    sa.Column('employee_count', sa.Integer(), nullable=True),
    sa.Column('employee_range', sa.String(length=50), nullable=True),
    sa.Column('annual_revenue', sa.BigInteger(), nullable=True),
    sa.Column('revenue_range', sa.String(length=50), nullable=True),
    sa.Column('founded_year', sa.Integer(), nullable=True),
    sa.Column('total_funding', sa.BigInteger(), nullable=True),
    sa.Column('latest_funding_stage', sa.String(length=100), nullable=True),
    sa.Column('latest_funding_date', sa.Date(), nullable=True),
    sa.Column('city', sa.String(length=100), nullable=True),
    sa.Column('state', sa.String(length=100), nullable=True),
    sa.Column('country', sa.String(length=100), nullable=True),
    sa.Column('address', sa.Text(), nullable=True),
    sa.Column('tech_stack', sa.JSON(), nullable=True),
    sa.Column('logo_url', sa.String(length=500), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('sources', sa.JSON(), nullable=True),
    sa.Column('primary_source', sa.String(length=50), nullable=True),
    sa.Column('enrichment_cost', sa.Float(), nullable=True),
    sa.Column('pipeline_stage', pipeline_stage, nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_companies_client_id'), 'companies', ['client_id'], unique=False)
    op.create_index(op.f('ix_companies_name'), 'companies', ['name'], unique=False)
    op.create_index(op.f('ix_companies_industry'), 'companies', ['industry'], unique=False)
    op.create_index(op.f('ix_companies_country'), 'companies', ['country'], unique=False)
    op.create_index(op.f('ix_companies_pipeline_stage'), 'companies', ['pipeline_stage'], unique=False)
    op.create_index('uq_companies_client_domain', 'companies', ['client_id', 'domain'], unique=True)

    op.create_table('contacts',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('company_id', sa.Integer(), nullable=False),
    sa.Column('first_name', sa.String(length=100), nullable=True),
    sa.Column('last_name', sa.String(length=100), nullable=True),
    sa.Column('full_name', sa.String(length=255), nullable=True),
    sa.Column('title', sa.String(length=255), nullable=True),
    sa.Column('seniority', sa.String(length=50), nullable=True),
    sa.Column('department', sa.String(length=100), nullable=True),
    sa.Column('linkedin_url', sa.String(length=500), nullable=True),
    sa.Column('work_email', sa.String(length=255), nullable=True),
    sa.Column('email_verified', sa.Boolean(), nullable=True),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('city', sa.String(length=100), nullable=True),
    sa.Column('country', sa.String(length=100), nullable=True),
    sa.Column('employment_history', sa.JSON(), nullable=True),
    sa.Column('external_ids', sa.JSON(), nullable=True),
    sa.Column('sources', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_contacts_client_id'), 'contacts', ['client_id'], unique=False)
    op.create_index(op.f('ix_contacts_company_id'), 'contacts', ['company_id'], unique=False)
    op.create_index(op.f('ix_contacts_title'), 'contacts', ['title'], unique=False)
    op.create_index(op.f('ix_contacts_seniority'), 'contacts', ['seniority'], unique=False)
    op.create_index('uq_contacts_company_linkedin', 'contacts', ['company_id', 'linkedin_url'], unique=True)

    op.create_table('target_profiles',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('filters', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_target_profiles_client_id'), 'target_profiles', ['client_id'], unique=False)

    op.create_table('personas',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('title_patterns', sa.JSON(), nullable=True),
    sa.Column('exclude_title_patterns', sa.JSON(), nullable=True),
    sa.Column('seniority_levels', sa.JSON(), nullable=True),
    sa.Column('departments', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_personas_client_id'), 'personas', ['client_id'], unique=False)

    op.create_table('funnels',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('target_profile_id', sa.Integer(), nullable=True),
    sa.Column('persona_id', sa.Integer(), nullable=True),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('strategy', sa.JSON(), nullable=True),
    sa.Column('filter_snapshot', sa.JSON(), nullable=True),
    sa.Column('refresh_cron', sa.String(length=100), nullable=True),
    sa.Column('last_built_at', sa.DateTime(), nullable=True),
    sa.Column('last_refreshed_at', sa.DateTime(), nullable=True),
    sa.Column('company_count', sa.Integer(), nullable=False),
    sa.Column('contact_count', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.ForeignKeyConstraint(['persona_id'], ['personas.id'], ),
    sa.ForeignKeyConstraint(['target_profile_id'], ['target_profiles.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_funnels_client_id'), 'funnels', ['client_id'], unique=False)

    op.create_table('funnel_members',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('funnel_id', sa.Integer(), nullable=False),
    sa.Column('company_id', sa.Integer(), nullable=True),
    sa.Column('contact_id', sa.Integer(), nullable=True),
    sa.Column('fit_score', sa.Numeric(precision=3, scale=2), nullable=True),
    sa.Column('signal_score', sa.Numeric(precision=3, scale=2), nullable=True),
    sa.Column('originality_score', sa.Numeric(precision=3, scale=2), nullable=True),
    sa.Column('composite_score', sa.Numeric(precision=3, scale=2), nullable=True),
    sa.Column('persona_score', sa.Numeric(precision=3, scale=2), nullable=True),
    sa.Column('added_reason', sa.Text(), nullable=True),
    sa.Column('added_at', sa.DateTime(), nullable=False),
    sa.Column('removed_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
    sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], ),
    sa.ForeignKeyConstraint(['funnel_id'], ['funnels.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_funnel_members_funnel', 'funnel_members', ['funnel_id'], unique=False)
    op.create_index('idx_funnel_members_company', 'funnel_members', ['company_id'], unique=False)
    op.create_index(
        'uq_funnel_members_active_company', 'funnel_members', ['funnel_id', 'company_id'], unique=True,
        postgresql_where=sa.text('removed_at IS NULL AND contact_id IS NULL'),
        sqlite_where=sa.text('removed_at IS NULL AND contact_id IS NULL'),
    )
    op.create_index(
        'uq_funnel_members_active_contact', 'funnel_members', ['funnel_id', 'contact_id'], unique=True,
        postgresql_where=sa.text('removed_at IS NULL AND contact_id IS NOT NULL'),
        sqlite_where=sa.text('removed_at IS NULL AND contact_id IS NOT NULL'),
    )

    op.create_table('company_signals',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('company_id', sa.Integer(), nullable=False),
    sa.Column('signal_type', sa.String(length=50), nullable=False),
    sa.Column('strength', sa.DECIMAL(precision=3, scale=2), nullable=False),
    sa.Column('evidence', sa.Text(), nullable=True),
    sa.Column('source', sa.String(length=50), nullable=False),
    sa.Column('source_url', sa.String(length=500), nullable=True),
    sa.Column('details', sa.JSON(), nullable=True),
    sa.Column('event_date', sa.Date(), nullable=True),
    sa.Column('detected_at', sa.DateTime(), nullable=False),
    sa.Column('expires_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_company_signals_client_id'), 'company_signals', ['client_id'], unique=False)
    op.create_index(op.f('ix_company_signals_company_id'), 'company_signals', ['company_id'], unique=False)
    op.create_index(op.f('ix_company_signals_signal_type'), 'company_signals', ['signal_type'], unique=False)
    op.create_index('idx_company_signals_company_expiry', 'company_signals', ['company_id', 'expires_at'], unique=False)

    op.create_table('contact_signals',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('contact_id', sa.Integer(), nullable=False),
    sa.Column('persona_id', sa.Integer(), nullable=True),
    sa.Column('signal_type', sa.String(length=50), nullable=False),
    sa.Column('strength', sa.DECIMAL(precision=3, scale=2), nullable=False),
    sa.Column('source', sa.String(length=50), nullable=False),
    sa.Column('evidence', sa.Text(), nullable=True),
    sa.Column('details', sa.JSON(), nullable=True),
    sa.Column('detected_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], ),
    sa.ForeignKeyConstraint(['persona_id'], ['personas.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_contact_signals_client_id'), 'contact_signals', ['client_id'], unique=False)
    op.create_index(op.f('ix_contact_signals_contact_id'), 'contact_signals', ['contact_id'], unique=False)

    op.create_table('jobs',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=False),
    sa.Column('type', job_type, nullable=False),
    sa.Column('status', job_status, nullable=False),
    sa.Column('total_items', sa.Integer(), nullable=True),
    sa.Column('processed_items', sa.Integer(), nullable=True),
    sa.Column('failed_items', sa.Integer(), nullable=True),
    sa.Column('input', sa.JSON(), nullable=True),
    sa.Column('output', sa.JSON(), nullable=True),
    sa.Column('error', sa.Text(), nullable=True),
    sa.Column('cancel_requested', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('started_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_jobs_client_status', 'jobs', ['client_id', 'status'], unique=False)
    op.create_index('idx_jobs_type_status', 'jobs', ['type', 'status'], unique=False)

    op.create_table('source_performance',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('source', sa.String(length=50), nullable=False),
    sa.Column('client_id', sa.Integer(), nullable=True),
    sa.Column('operation', sa.String(length=50), nullable=False),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('quality_score', sa.DECIMAL(precision=3, scale=2), nullable=True),
    sa.Column('response_time_ms', sa.Integer(), nullable=True),
    sa.Column('fields_populated', sa.Integer(), nullable=True),
    sa.Column('cost_credits', sa.Float(), nullable=True),
    sa.Column('error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_source_performance_client_id'), 'source_performance', ['client_id'], unique=False)
    op.create_index('idx_source_performance_source_created', 'source_performance', ['source', 'created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema: drop everything in reverse dependency order."""
    op.drop_table('source_performance')
    op.drop_table('jobs')
    op.drop_table('contact_signals')
    op.drop_table('company_signals')
    op.drop_table('funnel_members')
    op.drop_table('funnels')
    op.drop_table('personas')
    op.drop_table('target_profiles')
    op.drop_table('contacts')
    op.drop_table('companies')
    op.drop_table('clients')
    job_status.drop(op.get_bind(), checkfirst=True)
    job_type.drop(op.get_bind(), checkfirst=True)
    pipeline_stage.drop(op.get_bind(), checkfirst=True)
