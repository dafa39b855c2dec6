"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
The database is an in-process mongomock instance; nothing talks to a real
MongoDB server.
"""
import asyncio
import threading
from datetime import datetime, timedelta

import factory
import mongomock
import pytest
from fastapi.testclient import TestClient

from database import DocumentStore, get_store
from main import app
from schemas import Patient


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class PatientPayloadFactory(factory.DictFactory):
    """Body for POST /api/patients / PatientRepository.add_patient."""

    first_name = "Jane"
    last_name = factory.Sequence(lambda n: f"Doe{n}")
    email = factory.Sequence(lambda n: f"patient{n}@opticare.io")
    phone = factory.Sequence(lambda n: f"0712{n:06d}")
    age = "34"
    sex = "female"


class PatientFactory(factory.Factory):
    """In-memory Patient, for the report functions."""

    class Meta:
        model = Patient

    id = factory.Sequence(lambda n: f"patient-{n}")
    first_name = "John"
    last_name = factory.Sequence(lambda n: f"Smith{n}")
    email = factory.Sequence(lambda n: f"john{n}@opticare.io")
    phone = "0700000000"
    age = "40"
    sex = "male"


class AppointmentPayloadFactory(factory.DictFactory):
    patient_id = "patient-1"
    date = "2024-03-15"
    time = "09:00"
    duration = 30
    type = "consultation"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def run(coro):
    return asyncio.run(coro)


class TickingClock:
    """Returns a later time on every call."""

    def __init__(self, start=datetime(2024, 3, 15, 9, 0, 0)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class BlockingStore(DocumentStore):
    """list() waits until `release` is set, to simulate a slow database."""

    def __init__(self, release: threading.Event):
        super().__init__(mongomock.MongoClient()["blocked"])
        self.release = release

    def list(self, collection, filters=None, order_by=None):
        self.release.wait(5)
        return super().list(collection, filters, order_by)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["opticare_test"]


@pytest.fixture
def store(mongo_db):
    return DocumentStore(mongo_db, clock=TickingClock())


@pytest.fixture
def api_client(store):
    """FastAPI test client bound to the mongomock store."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_patient_payload():
    return {
        "first_name": "Alice",
        "last_name": "Wang",
        "email": "alice.wang@opticare.io",
        "phone": "0712345678",
        "age": "52",
        "sex": "female",
        "date_of_birth": "1972-04-02",
        "problem": "Blurred near vision",
        "history": [{"category": "vdu", "text": "8h screen time daily"}],
        "right_sphere": "-1.25",
        "right_cylinder": "-0.50",
        "right_axis": "180",
        "right_add": "+1.50",
        "left_sphere": "-1.00",
    }
