"""Initial schema: users, assignments, training, issues, reference data

Revision ID: initial_schema
Revises:
Create Date: 2026-01-05 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'initial_schema'
down_revision = None
branch_labels = None
depends_on = None


# Enums store member names, matching SQLAlchemy's default for Python enums
user_role = postgresql.ENUM(
    'PRACTICE_MANAGER', 'PRACTICE_PRINCIPAL', 'PRACTICE_MEMBER',
    'ACCOUNT_MANAGER', 'ISR', 'EXECUTIVE',
    name='userrole', create_type=False
)
assignment_status = postgresql.ENUM(
    'PENDING', 'UNASSIGNED', 'ASSIGNED',
    name='assignmentstatus', create_type=False
)
issue_status = postgresql.ENUM(
    'OPEN', 'IN_PROGRESS', 'PENDING_TESTING', 'BACKLOG', 'REJECTED', 'CLOSED',
    name='issuestatus', create_type=False
)


def _assignment_columns():
    """Columns shared by assignments and sa_assignments."""
    return [
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('status', assignment_status, nullable=False),
        sa.Column('practice', sa.String(), nullable=False),
        sa.Column('am', sa.String(), nullable=True),
        sa.Column('date_assigned', sa.String(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('request_date', sa.String(), nullable=True),
        sa.Column('eta', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('attachments', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (user_role, assignment_status, issue_status):
        enum_type.create(bind, checkfirst=True)

    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('role', user_role, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('practices', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_name', 'users', ['name'])

    # Resource assignments
    op.create_table(
        'assignments',
        *_assignment_columns(),
        sa.Column('assignment_number', sa.Integer(), nullable=False),
        sa.Column('project_number', sa.String(), nullable=False),
        sa.Column('project_description', sa.Text(), nullable=True),
        sa.Column('pm', sa.String(), nullable=True),
        sa.Column('pm_email', sa.String(), nullable=True),
        sa.Column('resource_assigned', sa.String(), nullable=True),
        sa.Column('documentation_link', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assignments_assignment_number', 'assignments', ['assignment_number'], unique=True)
    op.create_index('ix_assignments_status', 'assignments', ['status'])
    op.create_index('ix_assignments_practice', 'assignments', ['practice'])
    op.create_index('ix_assignments_customer_name', 'assignments', ['customer_name'])
    op.create_index('ix_assignments_project_number', 'assignments', ['project_number'])

    # SA assignments
    op.create_table(
        'sa_assignments',
        *_assignment_columns(),
        sa.Column('sa_assignment_number', sa.Integer(), nullable=False),
        sa.Column('opportunity_id', sa.String(), nullable=True),
        sa.Column('opportunity_name', sa.String(), nullable=True),
        sa.Column('sa_assigned', sa.String(), nullable=True),
        sa.Column('scoop_url', sa.String(), nullable=True),
        sa.Column('isr', sa.String(), nullable=True),
        sa.Column('submitted_by', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sa_assignments_sa_assignment_number', 'sa_assignments', ['sa_assignment_number'], unique=True)
    op.create_index('ix_sa_assignments_status', 'sa_assignments', ['status'])
    op.create_index('ix_sa_assignments_practice', 'sa_assignments', ['practice'])
    op.create_index('ix_sa_assignments_customer_name', 'sa_assignments', ['customer_name'])
    op.create_index('ix_sa_assignments_opportunity_id', 'sa_assignments', ['opportunity_id'])

    # Status history for both assignment kinds
    op.create_table(
        'assignment_status_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('record_id', sa.String(), nullable=False),
        sa.Column('from_status', assignment_status, nullable=True),
        sa.Column('to_status', assignment_status, nullable=False),
        sa.Column('practice', sa.String(), nullable=True),
        sa.Column('changed_by', sa.String(), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assignment_status_history_entity_type', 'assignment_status_history', ['entity_type'])
    op.create_index('ix_assignment_status_history_record_id', 'assignment_status_history', ['record_id'])
    op.create_index('ix_assignment_status_history_changed_at', 'assignment_status_history', ['changed_at'])

    # Training & certifications
    op.create_table(
        'training_certs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('practice', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('vendor', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('code', sa.String(), nullable=True),
        sa.Column('level', sa.String(), nullable=True),
        sa.Column('training_type', sa.String(), nullable=True),
        sa.Column('prerequisites', sa.Text(), nullable=True),
        sa.Column('exams_required', sa.String(), nullable=True),
        sa.Column('exam_cost', sa.String(), nullable=True),
        sa.Column('quantity_needed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('incentive', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_by_name', sa.String(), nullable=True),
        sa.Column('last_edited_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_training_certs_practice', 'training_certs', ['practice'])
    op.create_index('ix_training_certs_vendor', 'training_certs', ['vendor'])
    op.create_index('ix_training_certs_created_at', 'training_certs', ['created_at'])

    op.create_table(
        'training_signups',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('training_cert_id', sa.String(), nullable=False),
        sa.Column('user_email', sa.String(), nullable=False),
        sa.Column('user_name', sa.String(), nullable=True),
        sa.Column('iterations', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('completed_iterations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('iteration_certificates', sa.JSON(), nullable=False),
        sa.Column('completion_history', sa.JSON(), nullable=False),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('signed_up_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['training_cert_id'], ['training_certs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('training_cert_id', 'user_email', name='uq_training_signup_user')
    )
    op.create_index('ix_training_signups_training_cert_id', 'training_signups', ['training_cert_id'])
    op.create_index('ix_training_signups_user_email', 'training_signups', ['user_email'])

    op.create_table(
        'training_cert_settings',
        sa.Column('practice', sa.String(), nullable=False),
        sa.Column('vendors', sa.JSON(), nullable=False),
        sa.Column('levels', sa.JSON(), nullable=False),
        sa.Column('types', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('practice')
    )

    # Issues
    op.create_table(
        'issues',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('issue_number', sa.Integer(), nullable=False),
        sa.Column('issue_type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('problem_link', sa.String(), nullable=True),
        sa.Column('practice', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('status', issue_status, nullable=False),
        sa.Column('admin_username', sa.String(), nullable=True),
        sa.Column('resolution_comment', sa.Text(), nullable=True),
        sa.Column('upvotes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('attachments', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_issues_issue_number', 'issues', ['issue_number'], unique=True)
    op.create_index('ix_issues_issue_type', 'issues', ['issue_type'])
    op.create_index('ix_issues_email', 'issues', ['email'])
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])

    op.create_table(
        'issue_upvotes',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('issue_id', sa.String(), nullable=False),
        sa.Column('user_email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['issue_id'], ['issues.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('issue_id', 'user_email', name='uq_issue_upvote_user')
    )
    op.create_index('ix_issue_upvotes_issue_id', 'issue_upvotes', ['issue_id'])

    # Reference data
    op.create_table(
        'regions',
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('code')
    )

    op.create_table(
        'practice_etas',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('practice', sa.String(), nullable=False),
        sa.Column('status_transition', sa.String(), nullable=False),
        sa.Column('sa_name', sa.String(), nullable=False, server_default=''),
        sa.Column('avg_duration_hours', sa.Float(), nullable=False, server_default='0'),
        sa.Column('sample_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('practice', 'status_transition', 'sa_name', name='uq_practice_eta')
    )
    op.create_index('ix_practice_etas_practice', 'practice_etas', ['practice'])


def downgrade() -> None:
    op.drop_index('ix_practice_etas_practice', table_name='practice_etas')
    op.drop_table('practice_etas')
    op.drop_table('regions')

    op.drop_index('ix_issue_upvotes_issue_id', table_name='issue_upvotes')
    op.drop_table('issue_upvotes')
    for index in ('created_at', 'status', 'email', 'issue_type', 'issue_number'):
        op.drop_index(f'ix_issues_{index}', table_name='issues')
    op.drop_table('issues')

    op.drop_table('training_cert_settings')
    op.drop_index('ix_training_signups_user_email', table_name='training_signups')
    op.drop_index('ix_training_signups_training_cert_id', table_name='training_signups')
    op.drop_table('training_signups')
    for index in ('created_at', 'vendor', 'practice'):
        op.drop_index(f'ix_training_certs_{index}', table_name='training_certs')
    op.drop_table('training_certs')

    for index in ('changed_at', 'record_id', 'entity_type'):
        op.drop_index(f'ix_assignment_status_history_{index}', table_name='assignment_status_history')
    op.drop_table('assignment_status_history')

    for index in ('opportunity_id', 'customer_name', 'practice', 'status', 'sa_assignment_number'):
        op.drop_index(f'ix_sa_assignments_{index}', table_name='sa_assignments')
    op.drop_table('sa_assignments')

    for index in ('project_number', 'customer_name', 'practice', 'status', 'assignment_number'):
        op.drop_index(f'ix_assignments_{index}', table_name='assignments')
    op.drop_table('assignments')

    op.drop_index('ix_users_name', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (issue_status, assignment_status, user_role):
        enum_type.drop(bind, checkfirst=True)
