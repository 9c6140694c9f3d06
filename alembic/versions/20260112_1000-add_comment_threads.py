"""Add comment threads for assignments and issues

Revision ID: add_comment_threads
Revises: initial_schema
Create Date: 2026-01-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'add_comment_threads'
down_revision = 'initial_schema'
branch_labels = None
depends_on = None


def _comment_columns():
    return [
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_email', sa.String(), nullable=False),
        sa.Column('user_name', sa.String(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('attachments', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Comments on both assignment kinds, keyed like the status history
    op.create_table(
        'assignment_comments',
        *_comment_columns(),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('record_id', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assignment_comments_created_at', 'assignment_comments', ['created_at'])
    op.create_index('ix_assignment_comments_entity_type', 'assignment_comments', ['entity_type'])
    op.create_index('ix_assignment_comments_record_id', 'assignment_comments', ['record_id'])

    op.create_table(
        'issue_comments',
        *_comment_columns(),
        sa.Column('issue_id', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['issue_id'], ['issues.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_issue_comments_created_at', 'issue_comments', ['created_at'])
    op.create_index('ix_issue_comments_issue_id', 'issue_comments', ['issue_id'])


def downgrade() -> None:
    op.drop_index('ix_issue_comments_issue_id', table_name='issue_comments')
    op.drop_index('ix_issue_comments_created_at', table_name='issue_comments')
    op.drop_table('issue_comments')

    for index in ('record_id', 'entity_type', 'created_at'):
        op.drop_index(f'ix_assignment_comments_{index}', table_name='assignment_comments')
    op.drop_table('assignment_comments')
