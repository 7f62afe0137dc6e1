from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


connect_args = {'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(
    config.DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
    echo=config.SQL_ECHO,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)
        table_names = inspector.get_table_names()

        with engine.begin() as connection:
            if 'weekly_availability' in table_names:
                existing_columns = {column['name'] for column in inspector.get_columns('weekly_availability')}
                if 'notes' not in existing_columns:
                    connection.execute(text('ALTER TABLE weekly_availability ADD COLUMN notes VARCHAR(200)'))
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_weekly_availability_doctor ON weekly_availability(doctor_id, weekday)')
                )

            if 'date_overrides' in table_names:
                existing_columns = {column['name'] for column in inspector.get_columns('date_overrides')}
                if 'reason' not in existing_columns:
                    connection.execute(text('ALTER TABLE date_overrides ADD COLUMN reason VARCHAR(200)'))
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_date_overrides_doctor_date ON date_overrides(doctor_id, date)')
                )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('reason_for_visit', 'ALTER TABLE appointments ADD COLUMN reason_for_visit VARCHAR(500)'),
            ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR(200)'),
            ('rescheduled_from', 'ALTER TABLE appointments ADD COLUMN rescheduled_from INTEGER'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, date, status)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)')
            )

        _appointment_schema_checked = True
