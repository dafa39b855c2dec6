"""
Unit tests for PatientRepository.

Covers add/get round trip with defaults, required-field validation, partial
update, idempotent delete, search rules, and the cancellation / timeout
behaviour of get_all_patients.
"""
import asyncio
import threading
from unittest.mock import patch

import pytest

from exceptions import Cancelled, LoadFailed, NotFound, StoreUnavailable, ValidationError
from repositories import PatientRepository
from schemas import PatientCreate
from tests.conftest import BlockingStore, PatientPayloadFactory, run


@pytest.fixture
def patients(store):
    return PatientRepository(store)


class TestAddPatient:

    def test_round_trip_keeps_supplied_fields(self, patients, sample_patient_payload):
        patient_id = run(patients.add_patient(sample_patient_payload))
        patient = run(patients.get_patient_by_id(patient_id))

        assert patient.id == patient_id
        dumped = patient.model_dump(mode="json")
        for field, value in sample_patient_payload.items():
            assert dumped[field] == value

    def test_optional_fields_default_to_empty_string(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory()))
        patient = run(patients.get_patient_by_id(patient_id))

        for field in ("address", "insurance", "problem", "notes", "date_of_birth",
                      "right_sphere", "right_pd", "left_axis", "left_add"):
            assert getattr(patient, field) == ""
        assert patient.history == []

    def test_timestamps_are_set_by_store(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory()))
        patient = run(patients.get_patient_by_id(patient_id))

        assert patient.created_at is not None
        assert patient.updated_at == patient.created_at

    def test_email_is_stored_as_entered(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory(email="Alice@Example.COM")))
        assert run(patients.get_patient_by_id(patient_id)).email == "Alice@Example.COM"

    def test_invalid_email_rejected(self, patients):
        with pytest.raises(ValidationError) as exc_info:
            run(patients.add_patient(PatientPayloadFactory(email="not-an-email")))
        assert exc_info.value.detail[0]["field"] == "email"

    def test_update_keeps_email_as_entered(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory()))
        run(patients.update_patient(patient_id, {"email": "Ann.Lee@Eyes.IO"}))
        updated = run(patients.get_patient_by_id(patient_id))
        assert updated.email == "Ann.Lee@Eyes.IO"

    def test_accepts_model_instance(self, patients):
        payload = PatientCreate(**PatientPayloadFactory(first_name="Model"))
        patient_id = run(patients.add_patient(payload))
        assert run(patients.get_patient_by_id(patient_id)).first_name == "Model"

    @pytest.mark.parametrize("field", ["first_name", "last_name", "email", "phone"])
    def test_missing_required_field(self, patients, field):
        payload = PatientPayloadFactory()
        del payload[field]

        with pytest.raises(ValidationError) as exc_info:
            run(patients.add_patient(payload))

        assert exc_info.value.code == "MISSING_REQUIRED_FIELDS"
        assert exc_info.value.detail == {"missing": [field]}

    def test_blank_required_field(self, patients, store):
        with pytest.raises(ValidationError):
            run(patients.add_patient(PatientPayloadFactory(first_name="   ")))
        assert store.list("patients") == []

    def test_invalid_sex_rejected(self, patients):
        with pytest.raises(ValidationError) as exc_info:
            run(patients.add_patient(PatientPayloadFactory(sex="unknown")))
        assert exc_info.value.detail[0]["field"] == "sex"


class TestGetPatient:

    def test_unknown_id_is_absent(self, patients):
        assert run(patients.get_patient_by_id("65f0c0ffee0000000000abcd")) is None

    def test_cancelled_read_is_absent(self, patients):
        with patch.object(patients.store, "get_by_id", side_effect=Cancelled("interrupted")):
            assert run(patients.get_patient_by_id("65f0c0ffee0000000000abcd")) is None

    def test_store_fault_propagates(self, patients):
        with patch.object(patients.store, "get_by_id", side_effect=StoreUnavailable("down")):
            with pytest.raises(StoreUnavailable):
                run(patients.get_patient_by_id("65f0c0ffee0000000000abcd"))


class TestUpdateAndDelete:

    def test_update_changes_only_given_field(self, patients, sample_patient_payload):
        patient_id = run(patients.add_patient(sample_patient_payload))
        before = run(patients.get_patient_by_id(patient_id))

        run(patients.update_patient(patient_id, {"notes": "x"}))
        after = run(patients.get_patient_by_id(patient_id))

        assert after.notes == "x"
        assert after.updated_at > before.updated_at
        unchanged = before.model_dump(exclude={"notes", "updated_at"})
        assert after.model_dump(exclude={"notes", "updated_at"}) == unchanged

    def test_update_unknown_id_raises_not_found(self, patients):
        with pytest.raises(NotFound):
            run(patients.update_patient("65f0c0ffee0000000000abcd", {"notes": "x"}))

    def test_update_cannot_blank_required_field(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory()))
        with pytest.raises(ValidationError) as exc_info:
            run(patients.update_patient(patient_id, {"last_name": ""}))
        assert exc_info.value.detail == {"missing": ["last_name"]}

    def test_delete_then_get_is_absent_and_repeat_is_fine(self, patients):
        patient_id = run(patients.add_patient(PatientPayloadFactory()))

        run(patients.delete_patient(patient_id))
        assert run(patients.get_patient_by_id(patient_id)) is None
        run(patients.delete_patient(patient_id))


class TestSearch:

    @pytest.fixture
    def seeded(self, patients):
        run(patients.add_patient(PatientPayloadFactory(
            first_name="Maria", last_name="Lopez", email="maria@opticare.io", phone="0711222333")))
        run(patients.add_patient(PatientPayloadFactory(
            first_name="Tom", last_name="Brown", email="tom.b@eyes.io", phone="0799888777")))
        return patients

    def test_first_name_case_insensitive(self, seeded):
        assert [p.first_name for p in run(seeded.search_patients("MAR"))] == ["Maria"]

    def test_last_name(self, seeded):
        assert [p.first_name for p in run(seeded.search_patients("brown"))] == ["Tom"]

    def test_email(self, seeded):
        assert [p.first_name for p in run(seeded.search_patients("EYES.IO"))] == ["Tom"]

    def test_phone_substring(self, seeded):
        assert [p.first_name for p in run(seeded.search_patients("1222"))] == ["Maria"]

    def test_no_match(self, seeded):
        assert run(seeded.search_patients("zzz")) == []


class TestGetAllPatients:

    def test_returns_every_patient(self, patients):
        for _ in range(3):
            run(patients.add_patient(PatientPayloadFactory()))
        assert len(run(patients.get_all_patients())) == 3

    def test_cancelled_load_returns_empty_list(self):
        release = threading.Event()
        patients = PatientRepository(BlockingStore(release), load_timeout=5)

        async def scenario():
            task = asyncio.create_task(patients.get_all_patients())
            await asyncio.sleep(0.05)
            task.cancel()
            try:
                return await task
            finally:
                release.set()

        assert run(scenario()) == []

    def test_timeout_raises_load_failed(self):
        release = threading.Event()
        patients = PatientRepository(BlockingStore(release), load_timeout=0.05)

        async def scenario():
            try:
                await patients.get_all_patients()
            finally:
                release.set()

        with pytest.raises(LoadFailed) as exc_info:
            run(scenario())

        assert "Failed to load patients" in exc_info.value.message
        assert exc_info.value.http_status == 503

    def test_interrupted_by_database_returns_empty_list(self, patients):
        with patch.object(patients.store, "list", side_effect=Cancelled("interrupted")):
            assert run(patients.get_all_patients()) == []

    def test_real_fault_is_not_swallowed(self, patients):
        with patch.object(patients.store, "list", side_effect=StoreUnavailable("down")):
            with pytest.raises(StoreUnavailable):
                run(patients.get_all_patients())
