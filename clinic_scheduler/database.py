from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


engine_options = {'echo': config.DATABASE_ECHO}
if config.DATABASE_URL.startswith('sqlite'):
    engine_options['connect_args'] = {'check_same_thread': False}

engine = create_engine(config.DATABASE_URL, **engine_options)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

SCHEMA_MIGRATIONS = {
    'weekly_availability': {
        'columns': [
            ('clinic_id', 'ALTER TABLE weekly_availability ADD COLUMN clinic_id INTEGER'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_weekly_availability_owner_day '
            'ON weekly_availability(provider_id, clinic_id, weekday)',
        ],
    },
    'availability_exceptions': {
        'columns': [
            ('note', 'ALTER TABLE availability_exceptions ADD COLUMN note VARCHAR'),
            ('is_available', 'ALTER TABLE availability_exceptions ADD COLUMN is_available BOOLEAN DEFAULT FALSE'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_availability_exceptions_owner_date '
            'ON availability_exceptions(provider_id, clinic_id, date)',
        ],
    },
    'appointments': {
        'columns': [
            ('timezone', 'ALTER TABLE appointments ADD COLUMN timezone VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('start_time_utc', 'ALTER TABLE appointments ADD COLUMN start_time_utc TIMESTAMP'),
            ('end_time_utc', 'ALTER TABLE appointments ADD COLUMN end_time_utc TIMESTAMP'),
        ],
        'indexes': [
            'CREATE INDEX IF NOT EXISTS idx_appointments_provider_range '
            'ON appointments(provider_id, clinic_id, start_time, end_time)',
        ],
    },
}


def ensure_table_schema(table_name: str) -> None:
    if table_name in _checked_tables:
        return

    with _schema_lock:
        if table_name in _checked_tables:
            return

        inspector = inspect(engine)

        if table_name not in inspector.get_table_names():
            _checked_tables.add(table_name)
            return

        migration = SCHEMA_MIGRATIONS[table_name]
        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

        with engine.begin() as connection:
            for column_name, statement in migration['columns']:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            for statement in migration['indexes']:
                connection.execute(text(statement))

        _checked_tables.add(table_name)


def ensure_availability_schema() -> None:
    ensure_table_schema('weekly_availability')
    ensure_table_schema('availability_exceptions')


def ensure_appointment_schema() -> None:
    ensure_table_schema('appointments')
