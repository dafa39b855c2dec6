import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from database import DocumentStore, get_store
from exceptions import BaseAppException, NotFound, ValidationError
from reports import build_report, report_filename, report_to_csv
from repositories import AppointmentRepository, PatientRepository
from schemas import (
    Appointment,
    AppointmentCreate,
    AppointmentStats,
    AppointmentUpdate,
    CreatedResponse,
    Patient,
    PatientCreate,
    PatientSnapshot,
    PatientUpdate,
    ReportStats,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="OptiCare API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --------------------------
# Error responses
# --------------------------

@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    return JSONResponse(exc.to_response(), status_code=exc.http_status)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {
            "error": "Request validation failed",
            "type": "validation_error",
            "code": "VALIDATION_ERROR",
            "detail": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ],
        },
        status_code=400,
    )

# --------------------------
# Dependencies
# --------------------------

def get_patient_repository(store: DocumentStore = Depends(get_store)) -> PatientRepository:
    return PatientRepository(store)


def get_appointment_repository(store: DocumentStore = Depends(get_store)) -> AppointmentRepository:
    return AppointmentRepository(store)

# --------------------------
# Base endpoints
# --------------------------

@app.get("/")
def read_root():
    return {"message": "OptiCare API running"}


@app.get("/api/ping")
def ping():
    return {"message": config.PING_MESSAGE}


@app.get("/test")
def test_database(store: DocumentStore = Depends(get_store)):
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if config.DATABASE_URL else "Not Set",
        "database_name": "Set" if config.DATABASE_NAME else "Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = store.collection_names()[:10]
        response["database"] = "Available"
        response["connection_status"] = "Connected"
    except BaseAppException as e:
        response["database"] = f"Error: {e.message[:80]}"
    return response

# --------------------------
# Patients
# --------------------------

@app.post("/api/patients", response_model=CreatedResponse, status_code=201)
async def create_patient(payload: PatientCreate, patients: PatientRepository = Depends(get_patient_repository)):
    patient_id = await patients.add_patient(payload)
    return CreatedResponse(id=patient_id)


@app.get("/api/patients", response_model=List[Patient])
async def list_patients(q: Optional[str] = None, patients: PatientRepository = Depends(get_patient_repository)):
    if q:
        return await patients.search_patients(q)
    return await patients.get_all_patients()


async def _require_patient(patient_id: str, patients: PatientRepository) -> Patient:
    patient = await patients.get_patient_by_id(patient_id)
    if patient is None:
        raise NotFound(
            "Patient not found",
            code="PATIENT_NOT_FOUND",
            detail={"patient_id": patient_id},
        )
    return patient


@app.get("/api/patients/{patient_id}", response_model=Patient)
async def get_patient(patient_id: str, patients: PatientRepository = Depends(get_patient_repository)):
    return await _require_patient(patient_id, patients)


@app.patch("/api/patients/{patient_id}", response_model=Patient)
async def update_patient(
    patient_id: str,
    payload: PatientUpdate,
    patients: PatientRepository = Depends(get_patient_repository),
):
    await patients.update_patient(patient_id, payload)
    return await _require_patient(patient_id, patients)


@app.delete("/api/patients/{patient_id}", status_code=204)
async def delete_patient(patient_id: str, patients: PatientRepository = Depends(get_patient_repository)):
    await patients.delete_patient(patient_id)
    return Response(status_code=204)


@app.get("/api/patients/{patient_id}/appointments", response_model=List[Appointment])
async def list_patient_appointments(
    patient_id: str,
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    return await appointments.get_patient_appointments(patient_id)

# --------------------------
# Appointments
# --------------------------

@app.post("/api/appointments", response_model=CreatedResponse, status_code=201)
async def create_appointment(
    payload: AppointmentCreate,
    patients: PatientRepository = Depends(get_patient_repository),
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    patient = await patients.get_patient_by_id(payload.patient_id)
    if patient is None:
        raise ValidationError(
            "Please select a patient",
            code="PATIENT_NOT_SELECTED",
            detail={"patient_id": payload.patient_id},
        )
    appointment_id = await appointments.add_appointment(payload, PatientSnapshot.from_patient(patient))
    return CreatedResponse(id=appointment_id)


@app.get("/api/appointments", response_model=List[Appointment])
async def list_appointments(
    date: Optional[str] = None,
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    if date:
        return await appointments.get_appointments_by_date(date)
    return await appointments.get_all_appointments()


@app.get("/api/appointments/stats", response_model=AppointmentStats)
async def appointment_stats(appointments: AppointmentRepository = Depends(get_appointment_repository)):
    return await appointments.get_appointment_stats()


async def _require_appointment(appointment_id: str, appointments: AppointmentRepository) -> Appointment:
    appointment = await appointments.get_appointment_by_id(appointment_id)
    if appointment is None:
        raise NotFound(
            "Appointment not found",
            code="APPOINTMENT_NOT_FOUND",
            detail={"appointment_id": appointment_id},
        )
    return appointment


@app.get("/api/appointments/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    return await _require_appointment(appointment_id, appointments)


@app.patch("/api/appointments/{appointment_id}", response_model=Appointment)
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    await appointments.update_appointment(appointment_id, payload)
    return await _require_appointment(appointment_id, appointments)


@app.delete("/api/appointments/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: str,
    appointments: AppointmentRepository = Depends(get_appointment_repository),
):
    await appointments.delete_appointment(appointment_id)
    return Response(status_code=204)

# --------------------------
# Reports
# --------------------------

@app.get("/api/reports/summary", response_model=ReportStats)
async def reports_summary(patients: PatientRepository = Depends(get_patient_repository)):
    return build_report(await patients.get_all_patients())


@app.get("/api/reports/export")
async def reports_export(patients: PatientRepository = Depends(get_patient_repository)):
    stats = build_report(await patients.get_all_patients())
    filename = report_filename(stats.generated_at.date())
    return Response(
        content=report_to_csv(stats),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
