"""001 – Initial schema: leave ledger, leave lifecycle, attendance, policies.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "hr", "admin"]),
    ("employment_status", ["active", "inactive", "on_leave", "terminated"]),
    (
        "leave_type",
        [
            "sick",
            "casual",
            "annual",
            "maternity",
            "paternity",
            "unpaid",
            "compensatory",
        ],
    ),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("attendance_status", ["present", "absent", "half_day", "work_from_home"]),
    (
        "policy_category",
        ["leave", "attendance", "general", "hr", "it", "security"],
    ),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            code        VARCHAR(20) UNIQUE,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code  VARCHAR(20)  NOT NULL UNIQUE,
            email          VARCHAR(255) NOT NULL UNIQUE,
            first_name     VARCHAR(100) NOT NULL,
            last_name      VARCHAR(100) NOT NULL,
            department_id  UUID REFERENCES departments(id),
            designation    VARCHAR(150),
            role           user_role NOT NULL DEFAULT 'employee',
            status         employment_status NOT NULL DEFAULT 'active',
            joining_date   DATE NOT NULL,
            created_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_emp_department ON employees(department_id)")
    op.execute("CREATE INDEX idx_emp_status     ON employees(status)")

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type       leave_type NOT NULL,
            total            INTEGER NOT NULL DEFAULT 0,
            used             INTEGER NOT NULL DEFAULT 0,
            carried_forward  INTEGER NOT NULL DEFAULT 0,
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type),
            CONSTRAINT ck_leave_balance_total CHECK (total >= 0),
            CONSTRAINT ck_leave_balance_used CHECK (used >= 0),
            CONSTRAINT ck_leave_balance_carried_forward CHECK (carried_forward >= 0)
        )
    """)

    # ── 4. leave_applications ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applications (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            leave_type        leave_type NOT NULL,
            from_date         DATE NOT NULL,
            to_date           DATE NOT NULL,
            number_of_days    INTEGER NOT NULL,
            reason            TEXT NOT NULL,
            status            leave_status NOT NULL DEFAULT 'pending',
            applied_on        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            approved_by       UUID REFERENCES employees(id),
            approved_on       TIMESTAMPTZ,
            rejection_reason  TEXT,
            cancelled_at      TIMESTAMPTZ,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_dates CHECK (to_date >= from_date),
            CONSTRAINT ck_leave_days CHECK (number_of_days >= 1)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_applications_employee "
        "ON leave_applications(employee_id, from_date)"
    )
    op.execute(
        "CREATE INDEX ix_leave_applications_status ON leave_applications(status)"
    )

    # ── 5. leave_comments ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_comments (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            application_id  UUID NOT NULL REFERENCES leave_applications(id) ON DELETE CASCADE,
            author_id       UUID NOT NULL REFERENCES employees(id),
            text            TEXT NOT NULL,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 6. attendance_records ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_records (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            date                DATE NOT NULL,
            total_work_minutes  INTEGER NOT NULL DEFAULT 0,
            status              attendance_status NOT NULL DEFAULT 'present',
            notes               TEXT,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_emp_date UNIQUE (employee_id, date),
            CONSTRAINT ck_attendance_total_minutes CHECK (total_work_minutes >= 0)
        )
    """)
    op.execute("CREATE INDEX ix_attendance_records_date ON attendance_records(date)")

    # ── 7. attendance_sessions ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_sessions (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            record_id         UUID NOT NULL REFERENCES attendance_records(id) ON DELETE CASCADE,
            check_in          TIMESTAMPTZ NOT NULL,
            check_out         TIMESTAMPTZ,
            duration_minutes  INTEGER
        )
    """)
    # At most one open session per record
    op.execute(
        "CREATE UNIQUE INDEX uq_attendance_session_open "
        "ON attendance_sessions(record_id) WHERE check_out IS NULL"
    )

    # ── 8. policies ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE policies (
            id                        UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            title                     VARCHAR(200) NOT NULL,
            description               TEXT,
            category                  policy_category NOT NULL,
            working_hours_per_day     NUMERIC(4, 2) DEFAULT 8,
            working_days_per_week     INTEGER DEFAULT 5,
            weekend_days              JSONB DEFAULT '["Saturday", "Sunday"]',
            grace_time_minutes        INTEGER DEFAULT 15,
            half_day_threshold_hours  NUMERIC(4, 2) DEFAULT 4,
            effective_from            DATE NOT NULL,
            effective_to              DATE,
            is_active                 BOOLEAN DEFAULT TRUE,
            created_by                UUID REFERENCES employees(id),
            created_at                TIMESTAMPTZ DEFAULT NOW(),
            updated_at                TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_policies_category_active ON policies(category, is_active)"
    )

    # ── 9. policy_leave_types ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE policy_leave_types (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            policy_id          UUID NOT NULL REFERENCES policies(id) ON DELETE CASCADE,
            leave_type         leave_type NOT NULL,
            annual_quota       INTEGER NOT NULL,
            carry_forward      BOOLEAN DEFAULT FALSE,
            max_carry_forward  INTEGER DEFAULT 0,
            description        TEXT,
            CONSTRAINT uq_policy_leave_type UNIQUE (policy_id, leave_type),
            CONSTRAINT ck_policy_quota CHECK (annual_quota >= 0)
        )
    """)

    # ── 10. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES employees(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "policy_leave_types",
        "policies",
        "attendance_sessions",
        "attendance_records",
        "leave_comments",
        "leave_applications",
        "leave_balances",
        "employees",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
