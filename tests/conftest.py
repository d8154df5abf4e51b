import os
import tempfile

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('UPLOAD_DIR', tempfile.mkdtemp(prefix='booking-uploads-'))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment, AppointmentRequest  # noqa: E402,F401
from backend.models.notification import Notification  # noqa: E402,F401
from backend.models.user import User  # noqa: E402

WEEKDAY_SHIFT = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, user_id, event, payload):
        self.events.append((user_id, event, payload))


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, body):
        self.sent.append({'to': to, 'subject': subject, 'body': body})

    def last_otp(self) -> str:
        return self.sent[-1]['body'].split('is: ', 1)[1].split('.', 1)[0]


@pytest.fixture
def booking_db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(booking_db):
    def _make_user(name: str, role: str = 'patient', **fields) -> User:
        if role == 'doctor':
            fields.setdefault('availability_days', WEEKDAY_SHIFT)
            fields.setdefault('availability_start', '09:00')
            fields.setdefault('availability_end', '12:00')
        user = User(
            name=name,
            email=fields.pop('email', f'{name.lower().replace(" ", ".")}@example.com'),
            hashed_password=fields.pop('hashed_password', 'not-a-real-hash'),
            role=role,
            is_email_verified=fields.pop('is_email_verified', True),
            **fields,
        )
        booking_db.add(user)
        booking_db.commit()
        booking_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def mailer():
    return RecordingMailer()
