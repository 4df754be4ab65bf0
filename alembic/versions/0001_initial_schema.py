"""initial schema: users, patients, templates, appointments, communications, groups, audit log

Revision ID: 0001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM('admin', 'user', name='user_role', create_type=False)
communication_type = postgresql.ENUM('SMS', 'VOICE', name='communication_type', create_type=False)
communication_status = postgresql.ENUM('PENDING', 'SENT', 'DELIVERED', 'FAILED', 'CANCELLED', name='communication_status', create_type=False)
audit_action = postgresql.ENUM(
    'CREATE', 'READ', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', 'ACCESS_DENIED',
    'SEND', 'BULK_ACTION', 'IMPORT', name='audit_action', create_type=False
)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    for enum_type in (user_role, communication_type, communication_status, audit_action):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'patients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('sms_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('voice_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('medical_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_patients_phone_number', 'patients', ['phone_number'], unique=True)
    op.create_index('idx_patients_name', 'patients', ['last_name', 'first_name'])

    op.create_table(
        'templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', communication_type, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('variables', sa.JSON(), nullable=True),
        sa.Column('voice_speed', sa.Float(), nullable=True),
        sa.Column('voice_pitch', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_templates_type', 'templates', ['type'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('patient_id', sa.String(36), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('appointment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_appointments_patient_date', 'appointments', ['patient_id', 'appointment_date'])

    op.create_table(
        'communications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('patient_id', sa.String(36), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', communication_type, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('appointment_id', sa.String(36), sa.ForeignKey('appointments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', communication_status, nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('transport_message_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_communications_transport_message_id', 'communications', ['transport_message_id'], unique=True)
    op.create_index('idx_communications_patient_created', 'communications', ['patient_id', 'created_at'])
    op.create_index('idx_communications_status', 'communications', ['status'])

    op.create_table(
        'patient_groups',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(7), nullable=False, server_default='#3B82F6'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'patient_group_members',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('patient_id', sa.String(36), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', sa.String(36), sa.ForeignKey('patient_groups.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('patient_id', 'group_id', name='uq_patient_group_member'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('username', sa.String(50), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('resource_id', sa.String(36), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_category', 'audit_logs', ['category'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('idx_audit_user_date', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('idx_audit_action_date', 'audit_logs', ['action', 'timestamp'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('patient_group_members')
    op.drop_table('patient_groups')
    op.drop_table('communications')
    op.drop_table('appointments')
    op.drop_table('templates')
    op.drop_table('patients')
    op.drop_table('users')
    bind = op.get_bind()
    for enum_type in (audit_action, communication_status, communication_type, user_role):
        enum_type.drop(bind, checkfirst=True)
