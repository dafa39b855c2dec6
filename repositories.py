"""
Patient and appointment repositories.

Both repositories are async: each store call runs in a worker thread so the
event loop is never blocked by pymongo. They add no caching and no
transactions; every mutation is one document write.

Error policy: store errors propagate unchanged. The only thing caught here is
cancellation (the caller went away, or the database interrupted the
operation), which the read paths below turn into an empty or absent result.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

import config
from database import DocumentStore
from exceptions import Cancelled, LoadFailed, ValidationError
from schemas import (
    APPOINTMENTS_COLLECTION,
    PATIENTS_COLLECTION,
    Appointment,
    AppointmentCreate,
    AppointmentStats,
    AppointmentUpdate,
    Patient,
    PatientCreate,
    PatientSnapshot,
    PatientUpdate,
)

logger = logging.getLogger(__name__)

PATIENT_REQUIRED_FIELDS = ("first_name", "last_name", "email", "phone")
APPOINTMENT_REQUIRED_FIELDS = ("patient_id", "date", "time")

CANCELLATION = (asyncio.CancelledError, Cancelled)

LOAD_FAILED_MESSAGE = "Failed to load patients. Please check your internet connection and try again."

Payload = Union[BaseModel, Mapping[str, Any]]


async def _run(func, *args):
    return await asyncio.to_thread(func, *args)


def _blank_fields(data: Payload, fields) -> List[str]:
    if isinstance(data, Mapping):
        values = {f: data.get(f) for f in fields}
    else:
        values = {f: getattr(data, f, None) for f in fields}
    return [f for f, v in values.items() if not str(v or "").strip()]


def _require(data: Payload, fields) -> None:
    missing = _blank_fields(data, fields)
    if missing:
        raise ValidationError(
            "Please fill in all required fields",
            code="MISSING_REQUIRED_FIELDS",
            detail={"missing": missing},
        )


def _parse(model, data: Payload):
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model.model_validate(data)
    except SchemaError as e:
        raise ValidationError(
            "Invalid data",
            detail=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e


def _changes(model, partial: Payload) -> Dict[str, Any]:
    return _parse(model, partial).model_dump(mode="json", exclude_unset=True, exclude_none=True)


class PatientRepository:
    collection = PATIENTS_COLLECTION

    def __init__(self, store: DocumentStore, load_timeout: Optional[float] = None):
        self.store = store
        self.load_timeout = config.PATIENT_LOAD_TIMEOUT if load_timeout is None else load_timeout

    async def add_patient(self, data: Payload) -> str:
        _require(data, PATIENT_REQUIRED_FIELDS)
        patient = _parse(PatientCreate, data)
        patient_id = await _run(self.store.create, self.collection, patient.model_dump(mode="json"))
        logger.info(f"Patient created: {patient_id}")
        return patient_id

    async def get_all_patients(self) -> List[Patient]:
        """
        Load every patient, unordered.

        Returns [] if the caller is cancelled while waiting. Raises LoadFailed
        when the store does not answer within `load_timeout` seconds.
        """
        try:
            records = await asyncio.wait_for(
                _run(self.store.list, self.collection), self.load_timeout
            )
        except CANCELLATION:
            logger.debug("Patient list load cancelled")
            return []
        except asyncio.TimeoutError as e:
            logger.error(f"Patient list load timed out after {self.load_timeout}s")
            raise LoadFailed(LOAD_FAILED_MESSAGE, detail={"timeout": self.load_timeout}) from e
        return [Patient.model_validate(r) for r in records]

    async def get_patient_by_id(self, patient_id: str) -> Optional[Patient]:
        try:
            record = await _run(self.store.get_by_id, self.collection, patient_id)
        except CANCELLATION:
            logger.debug(f"Patient {patient_id} load cancelled")
            return None
        return Patient.model_validate(record) if record else None

    async def search_patients(self, term: str) -> List[Patient]:
        """
        Case-insensitive match on first name, last name and email; plain
        substring match on phone. Filters in memory over the whole collection.
        """
        records = await _run(self.store.list, self.collection)
        needle = term.lower()
        return [
            p for p in (Patient.model_validate(r) for r in records)
            if needle in p.first_name.lower()
            or needle in p.last_name.lower()
            or needle in p.email.lower()
            or term in p.phone
        ]

    async def update_patient(self, patient_id: str, partial: Payload) -> None:
        changes = _changes(PatientUpdate, partial)
        blank = _blank_fields(changes, [f for f in PATIENT_REQUIRED_FIELDS if f in changes])
        if blank:
            raise ValidationError(
                "Required fields cannot be emptied",
                code="MISSING_REQUIRED_FIELDS",
                detail={"missing": blank},
            )
        await _run(self.store.update, self.collection, patient_id, changes)
        logger.info(f"Patient updated: {patient_id} ({', '.join(sorted(changes)) or 'no fields'})")

    async def delete_patient(self, patient_id: str) -> None:
        # Appointments referencing the patient are kept with their snapshot.
        await _run(self.store.delete, self.collection, patient_id)
        logger.info(f"Patient deleted: {patient_id}")


class AppointmentRepository:
    collection = APPOINTMENTS_COLLECTION

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _list(self, filters=None, order_by=None) -> List[Appointment]:
        records = await _run(self.store.list, self.collection, filters, order_by)
        return [Appointment.model_validate(r) for r in records]

    async def add_appointment(self, data: Payload, patient: PatientSnapshot) -> str:
        """
        Book an appointment. `patient` is copied onto the record as-is and
        is not looked up or kept in sync. Overlapping slots are allowed.
        """
        _require(data, APPOINTMENT_REQUIRED_FIELDS)
        appointment = _parse(AppointmentCreate, data)
        if patient.patient_id != appointment.patient_id:
            raise ValidationError(
                "Patient details do not match the selected patient",
                code="PATIENT_MISMATCH",
                detail={"patient_id": appointment.patient_id, "snapshot_id": patient.patient_id},
            )
        fields = appointment.model_dump(mode="json")
        fields["patient_name"] = patient.name
        fields["patient_phone"] = patient.phone
        appointment_id = await _run(self.store.create, self.collection, fields)
        logger.info(f"Appointment created: {appointment_id} for patient {appointment.patient_id}")
        return appointment_id

    async def get_all_appointments(self) -> List[Appointment]:
        return await self._list(order_by="-date")

    async def get_appointment_by_id(self, appointment_id: str) -> Optional[Appointment]:
        record = await _run(self.store.get_by_id, self.collection, appointment_id)
        return Appointment.model_validate(record) if record else None

    async def get_patient_appointments(self, patient_id: str) -> List[Appointment]:
        return await self._list({"patient_id": patient_id}, "-date")

    async def get_appointments_by_date(self, date: str) -> List[Appointment]:
        # Exact text match: "2024-3-15" does not match "2024-03-15".
        return await self._list({"date": date}, "time")

    async def update_appointment(self, appointment_id: str, partial: Payload) -> None:
        changes = _changes(AppointmentUpdate, partial)
        await _run(self.store.update, self.collection, appointment_id, changes)
        logger.info(f"Appointment updated: {appointment_id}")

    async def delete_appointment(self, appointment_id: str) -> None:
        await _run(self.store.delete, self.collection, appointment_id)
        logger.info(f"Appointment deleted: {appointment_id}")

    async def get_appointment_stats(self) -> AppointmentStats:
        appointments = await self.get_all_appointments()
        statuses = [a.status for a in appointments]
        return AppointmentStats(
            total=len(statuses),
            scheduled=statuses.count("scheduled"),
            completed=statuses.count("completed"),
            cancelled=statuses.count("cancelled"),
            no_show=statuses.count("no-show"),
        )
