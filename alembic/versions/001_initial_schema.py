"""001 – Initial schema: all tables, indexes, enums.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000-04:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("attendance_status", ["present", "half_day", "absent", "leave"]),
    ("leave_type", ["pto", "sick"]),
    ("leave_status", ["pending", "approved", "rejected"]),
    ("timesheet_status", ["pending", "approved", "rejected"]),
    ("notification_type", ["info", "action_required", "approval", "alert"]),
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
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code     VARCHAR(20)  NOT NULL UNIQUE,
            first_name        VARCHAR(100) NOT NULL,
            last_name         VARCHAR(100) NOT NULL,
            email             VARCHAR(255) NOT NULL UNIQUE,
            designation       VARCHAR(150),
            role              VARCHAR(50)  NOT NULL DEFAULT 'employee',
            is_technician     BOOLEAN      NOT NULL DEFAULT FALSE,
            reports_to_id     UUID REFERENCES employees(id),
            booked_leaves     NUMERIC(6,1) NOT NULL DEFAULT 0,
            available_leaves  NUMERIC(6,1) NOT NULL DEFAULT 0,
            is_active         BOOLEAN DEFAULT TRUE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_reports_to_id ON employees(reports_to_id)")

    # ── 2. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type   leave_type NOT NULL,
            allotted     NUMERIC(5,1) NOT NULL DEFAULT 0,
            balance      NUMERIC(5,1) NOT NULL DEFAULT 0,
            updated_at   TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance_emp_type UNIQUE (employee_id, leave_type)
        )
    """)

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id    UUID NOT NULL REFERENCES employees(id),
            leave_type     leave_type NOT NULL,
            start_date     DATE NOT NULL,
            end_date       DATE NOT NULL,
            total_days     NUMERIC(5,1) NOT NULL,
            reason         TEXT,
            status         leave_status NOT NULL DEFAULT 'pending',
            decided_by_id  UUID REFERENCES employees(id),
            decided_at     TIMESTAMPTZ,
            applied_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_emp_dates "
        "ON leave_requests(employee_id, start_date, end_date)"
    )

    # ── 4. leave_responses ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_responses (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_request_id  UUID NOT NULL REFERENCES leave_requests(id) ON DELETE CASCADE,
            author_id         UUID REFERENCES employees(id),
            author_role       VARCHAR(50) NOT NULL,
            content           TEXT NOT NULL,
            is_system_note    BOOLEAN NOT NULL DEFAULT FALSE,
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_responses_leave_request_id "
        "ON leave_responses(leave_request_id)"
    )

    # ── 5. leave_ledger_entries ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_ledger_entries (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_request_id  UUID NOT NULL UNIQUE REFERENCES leave_requests(id) ON DELETE CASCADE,
            leave_type        leave_type NOT NULL,
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            days              NUMERIC(5,1) NOT NULL,
            status            leave_status NOT NULL,
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_ledger_entries_employee_id "
        "ON leave_ledger_entries(employee_id)"
    )

    # ── 6. attendance_records ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_records (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            date              DATE NOT NULL,
            check_in_time     TIMESTAMPTZ,
            check_out_time    TIMESTAMPTZ,
            total_hours       NUMERIC(5,2),
            status            attendance_status NOT NULL DEFAULT 'present',
            notes             TEXT,
            auto_checked_out  BOOLEAN NOT NULL DEFAULT FALSE,
            leave_request_id  UUID REFERENCES leave_requests(id) ON DELETE SET NULL,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_emp_date UNIQUE (employee_id, date)
        )
    """)
    # At most one open session per employee
    op.execute(
        "CREATE UNIQUE INDEX uq_attendance_one_open_session "
        "ON attendance_records(employee_id) "
        "WHERE check_in_time IS NOT NULL AND check_out_time IS NULL"
    )
    op.execute(
        "CREATE INDEX ix_attendance_check_in_time "
        "ON attendance_records(check_in_time)"
    )

    # ── 7. timesheets ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE timesheets (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            name             VARCHAR(200) NOT NULL,
            description      TEXT,
            date             DATE NOT NULL,
            submitted_hours  NUMERIC(5,2) NOT NULL,
            approved_hours   NUMERIC(5,2) NOT NULL DEFAULT 0,
            status           timesheet_status NOT NULL DEFAULT 'pending',
            reviewed_by_id   UUID REFERENCES employees(id),
            reviewed_at      TIMESTAMPTZ,
            review_note      TEXT,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_timesheet_emp_date UNIQUE (employee_id, date)
        )
    """)

    # ── 8. time_logs ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE time_logs (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id            UUID NOT NULL REFERENCES employees(id),
            job                    VARCHAR(200) NOT NULL,
            date                   DATE NOT NULL,
            hours                  NUMERIC(5,2) NOT NULL,
            description            TEXT,
            is_added_to_timesheet  BOOLEAN NOT NULL DEFAULT FALSE,
            timesheet_id           UUID REFERENCES timesheets(id) ON DELETE SET NULL,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            updated_at             TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_time_log_hours CHECK (hours > 0 AND hours <= 24)
        )
    """)
    op.execute("CREATE INDEX ix_time_logs_emp_date ON time_logs(employee_id, date)")

    # ── 9. helpdesk_tickets ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE helpdesk_tickets (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            ticket_number   VARCHAR(50) UNIQUE,
            title           VARCHAR(500) NOT NULL,
            description     TEXT,
            category        VARCHAR(200),
            status          VARCHAR(50) NOT NULL DEFAULT 'open',
            priority        VARCHAR(20) NOT NULL DEFAULT 'medium',
            created_by_id   UUID NOT NULL REFERENCES employees(id),
            assigned_to_id  UUID REFERENCES employees(id),
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_helpdesk_tickets_created_by_id "
        "ON helpdesk_tickets(created_by_id)"
    )
    op.execute(
        "CREATE INDEX ix_helpdesk_tickets_assigned_to_id "
        "ON helpdesk_tickets(assigned_to_id)"
    )

    # ── 10. notifications ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            type          notification_type DEFAULT 'info',
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            action_url    VARCHAR(500),
            entity_type   VARCHAR(50),
            entity_id     UUID,
            is_read       BOOLEAN DEFAULT FALSE,
            read_at       TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_notifications_recipient_read "
        "ON notifications(recipient_id, is_read)"
    )

    # ── 11. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_id     UUID REFERENCES employees(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notifications",
        "helpdesk_tickets",
        "time_logs",
        "timesheets",
        "attendance_records",
        "leave_ledger_entries",
        "leave_responses",
        "leave_requests",
        "leave_balances",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
