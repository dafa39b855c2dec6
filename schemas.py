"""
Database Schemas

Pydantic models for the MongoDB collections used by the practice.
Collection names are fixed:
- Patient -> "patients" collection
- Appointment -> "appointments" collection

Create/Update models describe what callers may send; the plain models are
what the repositories return, with every optional field filled in.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field
from pydantic.networks import validate_email

PATIENTS_COLLECTION = "patients"
APPOINTMENTS_COLLECTION = "appointments"

Sex = Literal["male", "female", "other", ""]
HistoryCategory = Literal["pm_history", "po_history", "vdu", "strabismus", "npc"]
AppointmentType = Literal["consultation", "follow-up", "prescription-exam", "other"]
AppointmentStatus = Literal["scheduled", "completed", "cancelled", "no-show"]


def _check_email(value: str) -> str:
    # Validated as an address, stored exactly as entered.
    validate_email(value)
    return value


Email = Annotated[str, AfterValidator(_check_email)]


class HistoryEntry(BaseModel):
    """One tagged line of patient history (PM Hx, PO Hx, VDU, strabismus, NPC)."""
    category: HistoryCategory
    text: str = ""


class Prescription(BaseModel):
    """
    Refraction for both eyes. Values are kept as entered; an empty string
    means "not recorded".
    """
    right_sphere: str = ""
    right_cylinder: str = ""
    right_axis: str = ""
    right_add: str = ""
    right_pd: str = ""
    left_sphere: str = ""
    left_cylinder: str = ""
    left_axis: str = ""
    left_add: str = ""
    left_pd: str = ""


class PatientCreate(Prescription):
    """
    Patients collection schema
    Collection name: "patients"
    """
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    email: Email = Field(..., description="Contact email")
    phone: str = Field(..., description="Contact number")
    age: str = Field("", description="Age in years, as entered")
    sex: Sex = ""
    date_of_birth: str = Field("", description="YYYY-MM-DD")
    address: str = ""
    insurance: str = Field("", description="Insurance provider")
    problem: str = Field("", description="Chief complaint")
    history: List[HistoryEntry] = Field(default_factory=list)
    notes: str = ""


class PatientUpdate(BaseModel):
    """Partial patch; only the fields that are set are written."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[Email] = None
    phone: Optional[str] = None
    age: Optional[str] = None
    sex: Optional[Sex] = None
    date_of_birth: Optional[str] = None
    address: Optional[str] = None
    insurance: Optional[str] = None
    problem: Optional[str] = None
    history: Optional[List[HistoryEntry]] = None
    notes: Optional[str] = None
    right_sphere: Optional[str] = None
    right_cylinder: Optional[str] = None
    right_axis: Optional[str] = None
    right_add: Optional[str] = None
    right_pd: Optional[str] = None
    left_sphere: Optional[str] = None
    left_cylinder: Optional[str] = None
    left_axis: Optional[str] = None
    left_add: Optional[str] = None
    left_pd: Optional[str] = None


class Patient(Prescription):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    age: str = ""
    sex: Sex = ""
    date_of_birth: str = ""
    address: str = ""
    insurance: str = ""
    problem: str = ""
    history: List[HistoryEntry] = Field(default_factory=list)
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PatientSnapshot(BaseModel):
    """
    Patient name and phone copied onto an appointment when it is booked.
    Later edits to the patient do not reach existing appointments.
    """
    patient_id: str
    name: str
    phone: str = ""

    @classmethod
    def from_patient(cls, patient: Patient) -> "PatientSnapshot":
        return cls(patient_id=patient.id, name=patient.full_name, phone=patient.phone)


class AppointmentCreate(BaseModel):
    """
    Appointments collection schema
    Collection name: "appointments"
    """
    patient_id: str
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM, 24-hour")
    duration: int = Field(30, gt=0, description="Minutes")
    type: AppointmentType = "consultation"
    status: AppointmentStatus = "scheduled"
    notes: str = ""


class AppointmentUpdate(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0)
    type: Optional[AppointmentType] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None


class Appointment(BaseModel):
    id: str
    patient_id: str
    patient_name: str = ""
    patient_phone: str = ""
    date: str
    time: str
    duration: int = 30
    type: AppointmentType = "consultation"
    status: AppointmentStatus = "scheduled"
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppointmentStats(BaseModel):
    total: int = 0
    scheduled: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0


class ReportStats(BaseModel):
    """Figures shown on the reports page and written to the CSV export."""
    generated_at: datetime
    total_patients: int
    average_age: int
    gender: dict
    age_distribution: dict
    with_refractive_error: int
    with_astigmatism: int
    with_presbyopia: int


class CreatedResponse(BaseModel):
    id: str
