from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from quotedesk.auth import Principal, principal_from_employee
from quotedesk.models import Base, Employee


def memory_engine(_url: str = 'sqlite://'):
    return create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)


def make_session() -> Session:
    engine = memory_engine()
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def add_employee(db: Session, name: str, **flags) -> Employee:
    employee = Employee(
        name=name,
        email=f'{name.lower().replace(" ", ".")}@example.com',
        password_hash='not-a-real-hash',
        address='1 Test St',
        active=True,
        **flags,
    )
    db.add(employee)
    db.flush()
    return employee


def as_principal(employee: Employee) -> Principal:
    return principal_from_employee(employee)


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    def send(self, message) -> None:
        self.sent.append(message)
        if self.fail:
            raise ConnectionError('SMTP server unavailable')


class FakeOrderClient:
    def __init__(self, confirmation=None, error=None) -> None:
        self.confirmation = confirmation
        self.error = error
        self.requests = []

    def submit(self, order):
        self.requests.append(order)
        if self.error is not None:
            raise self.error
        return self.confirmation
