"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Searches table
    op.create_table(
        'searches',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('search_terms', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=False),
        sa.Column('search_prompt', sa.Text(), nullable=False),
        sa.Column('example_images', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Offers table
    op.create_table(
        'offers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('search_id', sa.Uuid(), nullable=False),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('external_id', sa.Text(), nullable=False),
        sa.Column('search_term', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_amount', sa.Numeric(), nullable=True),
        sa.Column('price_currency', sa.Text(), nullable=True),
        sa.Column('brand', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('subcategory', sa.Text(), nullable=True),
        sa.Column('condition', sa.Text(), nullable=True),
        sa.Column('size', sa.Text(), nullable=True),
        sa.Column('color', sa.Text(), nullable=True),
        sa.Column('material', sa.Text(), nullable=True),
        sa.Column('availability', sa.Text(), nullable=True),
        sa.Column('created_at_source', sa.DateTime(), nullable=True),
        sa.Column('raw_metadata', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        sa.Column('scraped_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['search_id'], ['searches.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('source', 'external_id', 'search_id', name='offers_source_external_search_unique')
    )
    op.create_index('offers_search_id_idx', 'offers', ['search_id'])
    op.create_index('offers_search_term_idx', 'offers', ['search_term'])
    op.create_index('offers_brand_idx', 'offers', ['brand'])
    op.create_index('offers_category_idx', 'offers', ['category'])
    op.create_index('offers_price_amount_idx', 'offers', ['price_amount'])

    # Offer images table
    op.create_table(
        'offer_images',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('offer_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('image_url_full', sa.Text(), nullable=True),
        sa.Column('image_url_thumb', sa.Text(), nullable=True),
        sa.Column('image_data', sa.Text(), nullable=True),
        sa.Column('image_mime', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('offer_id', 'position', name='offer_images_offer_position_unique')
    )

    # Offer/search evaluations table
    op.create_table(
        'offer_search_evaluations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('offer_id', sa.Uuid(), nullable=False),
        sa.Column('search_id', sa.Uuid(), nullable=False),
        sa.Column('decision', sa.Text(), nullable=False),
        sa.Column('style_score', sa.Numeric(), nullable=True),
        sa.Column('confidence', sa.Numeric(), nullable=True),
        sa.Column('match_reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('mismatch_reasons', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('tags', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('raw_model_output', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('model_name', sa.Text(), nullable=False),
        sa.Column('model_version', sa.Text(), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['search_id'], ['searches.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('offer_id', 'search_id', name='offer_search_evaluations_offer_search_unique')
    )
    op.create_index('offer_search_evaluations_search_decision_idx', 'offer_search_evaluations', ['search_id', 'decision'])
    op.create_index('offer_search_evaluations_offer_idx', 'offer_search_evaluations', ['offer_id'])


def downgrade() -> None:
    op.drop_index('offer_search_evaluations_offer_idx', table_name='offer_search_evaluations')
    op.drop_index('offer_search_evaluations_search_decision_idx', table_name='offer_search_evaluations')
    op.drop_table('offer_search_evaluations')
    op.drop_table('offer_images')
    op.drop_index('offers_price_amount_idx', table_name='offers')
    op.drop_index('offers_category_idx', table_name='offers')
    op.drop_index('offers_brand_idx', table_name='offers')
    op.drop_index('offers_search_term_idx', table_name='offers')
    op.drop_index('offers_search_id_idx', table_name='offers')
    op.drop_table('offers')
    op.drop_table('searches')
