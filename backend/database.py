from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


DATABASE_URL = config.DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        index_statements = []
        if 'appointment_requests' in table_names:
            index_statements.extend([
                'CREATE INDEX IF NOT EXISTS idx_requests_doctor_slot '
                'ON appointment_requests(doctor_id, date, time, status)',
                'CREATE INDEX IF NOT EXISTS idx_requests_patient_created '
                'ON appointment_requests(patient_id, created_at)',
            ])
        if 'notifications' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_notifications_user_created '
                'ON notifications(user_id, created_at)'
            )

        with engine.begin() as connection:
            for statement in index_statements:
                connection.execute(text(statement))

        _booking_schema_checked = True
