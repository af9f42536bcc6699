import os
from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('DB_RETRY_DELAY_MS', '0')

from hospital.auth.dependencies import CurrentUser, get_current_user  # noqa: E402
from hospital.database import Base, TransactionExecutor, build_engine, create_session_factory, get_executor  # noqa: E402
from hospital.main import app  # noqa: E402
from hospital.models.appointment import Appointment  # noqa: E402
from hospital.models.availability import AvailableSlot  # noqa: E402
from hospital.models.doctor import Doctor  # noqa: E402
from hospital.models.patient import Patient  # noqa: E402
from hospital.models.payment import Payment  # noqa: E402


class Records:
    """Creates and counts rows, one transaction per call."""

    def __init__(self, executor: TransactionExecutor):
        self.executor = executor

    def doctor(self, full_name: str = 'Dr. Ayesha Rahman', fee: str | None = '2200.00') -> int:
        with self.executor.transaction() as session:
            doctor = Doctor(
                full_name=full_name,
                specialization='Cardiology',
                consultation_fee=Decimal(fee) if fee is not None else None,
                max_patient_number=25,
                current_patient_number=0,
            )
            session.add(doctor)
            session.flush()
            return doctor.id

    def patient(self, full_name: str = 'Rahim Uddin') -> int:
        with self.executor.transaction() as session:
            patient = Patient(full_name=full_name)
            session.add(patient)
            session.flush()
            return patient.id

    def slot(
        self,
        doctor_id: int,
        schedule_date: date = date(2024, 6, 1),
        start_time: time = time(9, 0),
        end_time: time = time(10, 0),
        is_available: bool = True,
    ) -> int:
        with self.executor.transaction() as session:
            slot = AvailableSlot(
                doctor_id=doctor_id,
                schedule_date=schedule_date,
                day_of_week=schedule_date.strftime('%A'),
                start_time=start_time,
                end_time=end_time,
                is_available=is_available,
            )
            session.add(slot)
            session.flush()
            return slot.id

    def count(self, model) -> int:
        with self.executor.transaction() as session:
            return session.query(func.count()).select_from(model).scalar()

    def slot_is_available(self, slot_id: int) -> bool:
        with self.executor.transaction() as session:
            return session.get(AvailableSlot, slot_id).is_available

    def appointment(self, appointment_id: int) -> Appointment:
        with self.executor.transaction() as session:
            return session.get(Appointment, appointment_id)

    def payment_for(self, appointment_id: int) -> Payment | None:
        with self.executor.transaction() as session:
            return session.query(Payment).filter(Payment.appointment_id == appointment_id).first()


@pytest.fixture
def booking_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def executor(booking_engine):
    return TransactionExecutor(
        create_session_factory(booking_engine),
        retry_attempts=3,
        retry_delay_ms=0,
        lock_timeout_ms=None,
    )


@pytest.fixture
def records(executor):
    return Records(executor)


class ApiSession:
    """TestClient bound to the test executor, acting as one user at a time."""

    def __init__(self, client: TestClient):
        self.client = client

    def login(self, user_id: int, role: str) -> None:
        app.dependency_overrides[get_current_user] = lambda: CurrentUser(id=user_id, role=role)

    def __getattr__(self, name):
        return getattr(self.client, name)


@pytest.fixture
def next_week() -> date:
    return date.today() + timedelta(days=7)


@pytest.fixture
def api(executor):
    app.dependency_overrides[get_executor] = lambda: executor
    try:
        yield ApiSession(TestClient(app, raise_server_exceptions=False))
    finally:
        app.dependency_overrides.clear()
