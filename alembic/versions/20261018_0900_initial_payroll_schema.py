"""Initial payroll engine schema

Revision ID: 20261018_0900_initial_payroll_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration creates:
- companies, employees: collaborator read models (tenant and employee master data)
- payroll_records: one record per employee per period with optimistic version counter
- payroll_audit_logs: append-only audit trail of record mutations
- withholding_declarations / withholding_line_items: EMP201
- uif_declarations / uif_line_items: UI-19
- annual_certificates: IRP5
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '20261018_0900_initial_payroll_schema'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(18, 2)

# Enum labels are the Python member names (SQLAlchemy Enum default)
ENUMS = {
    'payrollstatus': ('DRAFT', 'PROCESSED', 'PAID'),
    'paymentmethod': ('BANK_TRANSFER', 'CASH', 'CHECK', 'CRYPTO'),
    'payrollauditaction': ('UPDATE', 'PROCESS', 'MARK_PAID'),
    'submissionstatus': ('DRAFT', 'SUBMITTED'),
    'declarationpaymentstatus': ('PENDING', 'PAID', 'OVERDUE'),
    'certificatestatus': ('DRAFT', 'ISSUED'),
}


def _enum(name: str):
    """Column type for a shared enum; PostgreSQL types are created once up front."""
    if op.get_bind().dialect.name == 'postgresql':
        return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)
    return sa.Enum(*ENUMS[name], name=name)


def _id_column():
    return sa.Column('id', sa.Uuid(as_uuid=True), nullable=False)


def _tenant_column():
    return sa.Column(
        'tenant_id', sa.Uuid(as_uuid=True), nullable=False,
        comment='Owning company; every query is filtered on this column',
    )


def _timestamp_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def _declaration_columns():
    """Period, employer header, submission and payment fields shared by EMP201 and UI-19."""
    return [
        sa.Column('month', sa.Integer, nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('period_start_date', sa.Date, nullable=False),
        sa.Column('period_end_date', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('employer_name', sa.String(255), nullable=False),
        sa.Column('employer_reference', sa.String(20), nullable=True),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.Column('employee_count', sa.Integer, nullable=False),
        sa.Column('total_remuneration', MONEY, nullable=False),
        sa.Column('submission_status', _enum('submissionstatus'), nullable=False),
        sa.Column('submission_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submission_reference', sa.String(100), nullable=True),
        sa.Column('acknowledgement', sa.String(255), nullable=True),
        sa.Column('submitted_by', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('payment_status', _enum('declarationpaymentstatus'), nullable=False),
        sa.Column('payment_date', sa.Date, nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('payment_amount', MONEY, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create payroll engine tables."""

    connection = op.get_bind()
    if connection.dialect.name == 'postgresql':
        for name, labels in ENUMS.items():
            postgresql.ENUM(*labels, name=name).create(connection, checkfirst=True)

    # ===========================================
    # COLLABORATOR READ MODELS
    # ===========================================

    op.create_table(
        'companies',
        _id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.Column('paye_reference', sa.String(20), nullable=True),
        sa.Column('uif_reference', sa.String(20), nullable=True),
        sa.Column('sdl_reference', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_companies'),
    )

    op.create_table(
        'employees',
        _id_column(),
        _tenant_column(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('id_number', sa.String(20), nullable=True),
        sa.Column('tax_number', sa.String(20), nullable=True),
        sa.Column('uif_number', sa.String(20), nullable=True),
        sa.Column('basic_salary', sa.Numeric(18, 2), nullable=True),
        sa.Column('custom_tax_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('pension_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_employees'),
    )
    op.create_index('ix_employees_tenant_id', 'employees', ['tenant_id'])

    # ===========================================
    # PAYROLL RECORDS AND AUDIT
    # ===========================================

    op.create_table(
        'payroll_records',
        _id_column(),
        _tenant_column(),
        sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('month', sa.Integer, nullable=False),
        sa.Column('year', sa.Integer, nullable=False),

        # Earnings
        sa.Column('basic_salary', MONEY, nullable=False),
        sa.Column('allowances', MONEY, nullable=False),
        sa.Column('bonuses', MONEY, nullable=False),
        sa.Column('overtime', MONEY, nullable=False),
        sa.Column('gross_pay', MONEY, nullable=False),

        # Deductions
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('uif_employee', MONEY, nullable=False),
        sa.Column('pension', MONEY, nullable=False),
        sa.Column('medical_aid', MONEY, nullable=False),
        sa.Column('other_deductions', MONEY, nullable=False),
        sa.Column('total_deductions', MONEY, nullable=False),
        sa.Column('net_pay', MONEY, nullable=False),

        # Lifecycle
        sa.Column('status', _enum('payrollstatus'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('payment_method', _enum('paymentmethod'), nullable=True),
        sa.Column('payment_date', sa.Date, nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_payroll_records'),
        sa.UniqueConstraint(
            'tenant_id', 'employee_id', 'month', 'year',
            name='uq_payroll_record_employee_period',
        ),
    )
    op.create_index('ix_payroll_records_tenant_id', 'payroll_records', ['tenant_id'])
    op.create_index('ix_payroll_records_employee_id', 'payroll_records', ['employee_id'])
    op.create_index('ix_payroll_records_tenant_period', 'payroll_records', ['tenant_id', 'year', 'month'])

    op.create_table(
        'payroll_audit_logs',
        _id_column(),
        _tenant_column(),
        sa.Column('payroll_record_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer, nullable=False, comment='Record version produced by this mutation'),
        sa.Column('actor_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('action', _enum('payrollauditaction'), nullable=False),
        sa.Column('old_status', sa.String(20), nullable=True),
        sa.Column('new_status', sa.String(20), nullable=True),
        sa.Column('old_values', sa.JSON, nullable=False),
        sa.Column('new_values', sa.JSON, nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_payroll_audit_logs'),
        sa.ForeignKeyConstraint(
            ['payroll_record_id'], ['payroll_records.id'],
            name='fk_payroll_audit_logs_payroll_record_id_payroll_records',
            ondelete='RESTRICT',
        ),
        sa.UniqueConstraint('payroll_record_id', 'sequence', name='uq_payroll_audit_record_sequence'),
    )
    op.create_index('ix_payroll_audit_logs_tenant_id', 'payroll_audit_logs', ['tenant_id'])
    op.create_index('ix_payroll_audit_logs_payroll_record_id', 'payroll_audit_logs', ['payroll_record_id'])
    op.create_index('ix_payroll_audit_logs_actor_id', 'payroll_audit_logs', ['actor_id'])

    # ===========================================
    # EMP201
    # ===========================================

    op.create_table(
        'withholding_declarations',
        _id_column(),
        _tenant_column(),
        *_declaration_columns(),
        sa.Column('paye_amount', MONEY, nullable=False),
        sa.Column('sdl_amount', MONEY, nullable=False),
        sa.Column('uif_employee_amount', MONEY, nullable=False),
        sa.Column('uif_employer_amount', MONEY, nullable=False),
        sa.Column('uif_total_amount', MONEY, nullable=False),
        sa.Column('eti_amount', MONEY, nullable=False, comment='Employment tax incentive credit'),
        sa.Column('total_liability', MONEY, nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_withholding_declarations'),
        sa.UniqueConstraint('tenant_id', 'year', 'month', name='uq_withholding_declaration_period'),
    )
    op.create_index('ix_withholding_declarations_tenant_id', 'withholding_declarations', ['tenant_id'])

    op.create_table(
        'withholding_line_items',
        _id_column(),
        _tenant_column(),
        sa.Column('declaration_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('payroll_record_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('employee_name', sa.String(200), nullable=False),
        sa.Column('id_number', sa.String(20), nullable=True),
        sa.Column('tax_number', sa.String(20), nullable=True),
        sa.Column('gross_remuneration', MONEY, nullable=False),
        sa.Column('paye', MONEY, nullable=False),
        sa.Column('sdl', MONEY, nullable=False),
        sa.Column('uif_employee', MONEY, nullable=False),
        sa.Column('uif_employer', MONEY, nullable=False),
        sa.Column('uif_total', MONEY, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_withholding_line_items'),
        sa.ForeignKeyConstraint(
            ['declaration_id'], ['withholding_declarations.id'],
            name='fk_withholding_line_items_declaration_id_withholding_declarations',
            ondelete='CASCADE',
        ),
    )
    op.create_index('ix_withholding_line_items_tenant_id', 'withholding_line_items', ['tenant_id'])
    op.create_index('ix_withholding_line_items_declaration_id', 'withholding_line_items', ['declaration_id'])

    # ===========================================
    # UI-19
    # ===========================================

    op.create_table(
        'uif_declarations',
        _id_column(),
        _tenant_column(),
        *_declaration_columns(),
        sa.Column('total_uif_employee', MONEY, nullable=False),
        sa.Column('total_uif_employer', MONEY, nullable=False),
        sa.Column('total_uif', MONEY, nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_uif_declarations'),
        sa.UniqueConstraint('tenant_id', 'year', 'month', name='uq_uif_declaration_period'),
    )
    op.create_index('ix_uif_declarations_tenant_id', 'uif_declarations', ['tenant_id'])

    op.create_table(
        'uif_line_items',
        _id_column(),
        _tenant_column(),
        sa.Column('declaration_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('payroll_record_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('employee_name', sa.String(200), nullable=False),
        sa.Column('id_number', sa.String(20), nullable=True),
        sa.Column('uif_number', sa.String(20), nullable=True),
        sa.Column('gross_remuneration', MONEY, nullable=False),
        sa.Column('uif_employee', MONEY, nullable=False),
        sa.Column('uif_employer', MONEY, nullable=False),
        sa.Column('total_uif', MONEY, nullable=False),
        sa.Column('days_worked', sa.Integer, nullable=False),
        sa.Column('reason_code', sa.String(2), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_uif_line_items'),
        sa.ForeignKeyConstraint(
            ['declaration_id'], ['uif_declarations.id'],
            name='fk_uif_line_items_declaration_id_uif_declarations',
            ondelete='CASCADE',
        ),
    )
    op.create_index('ix_uif_line_items_tenant_id', 'uif_line_items', ['tenant_id'])
    op.create_index('ix_uif_line_items_declaration_id', 'uif_line_items', ['declaration_id'])

    # ===========================================
    # IRP5
    # ===========================================

    op.create_table(
        'annual_certificates',
        _id_column(),
        _tenant_column(),
        sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('tax_year', sa.Integer, nullable=False, comment='Tax year N runs 1 March N-1 to end February N'),
        sa.Column('certificate_number', sa.String(40), nullable=False),
        sa.Column('employee_name', sa.String(200), nullable=False),
        sa.Column('id_number', sa.String(20), nullable=True),
        sa.Column('tax_number', sa.String(20), nullable=True),
        sa.Column('code_3601', MONEY, nullable=False),
        sa.Column('code_4101', MONEY, nullable=False),
        sa.Column('code_4141', MONEY, nullable=False),
        sa.Column('code_4142', MONEY, nullable=False),
        sa.Column('code_4149', MONEY, nullable=False),
        sa.Column('total_remuneration', MONEY, nullable=False),
        sa.Column('total_deductions', MONEY, nullable=False),
        sa.Column('net_pay', MONEY, nullable=False),
        sa.Column('months_employed', sa.Integer, nullable=False),
        sa.Column('generation_status', _enum('certificatestatus'), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issued_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issued_by', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('reissue_count', sa.Integer, nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_annual_certificates'),
        sa.UniqueConstraint(
            'tenant_id', 'employee_id', 'tax_year',
            name='uq_annual_certificate_employee_year',
        ),
        sa.UniqueConstraint('tenant_id', 'certificate_number', name='uq_annual_certificate_number'),
    )
    op.create_index('ix_annual_certificates_tenant_id', 'annual_certificates', ['tenant_id'])
    op.create_index('ix_annual_certificates_employee_id', 'annual_certificates', ['employee_id'])


def downgrade() -> None:
    """Drop payroll engine tables."""
    op.drop_table('annual_certificates')
    op.drop_table('uif_line_items')
    op.drop_table('uif_declarations')
    op.drop_table('withholding_line_items')
    op.drop_table('withholding_declarations')
    op.drop_table('payroll_audit_logs')
    op.drop_table('payroll_records')
    op.drop_table('employees')
    op.drop_table('companies')

    # Drop enums
    connection = op.get_bind()
    if connection.dialect.name == 'postgresql':
        for name in reversed(list(ENUMS)):
            postgresql.ENUM(name=name).drop(connection, checkfirst=True)
