# medscan/models.py
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _clamp(value, low: float = 0, high: float = 100) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    return max(low, min(high, number))


class AgeGroup(str, Enum):
    INFANT = "Infant (0-2)"
    CHILD = "Child (3-12)"
    TEEN = "Teen (13-18)"
    ADULT = "Adult (19-64)"
    SENIOR = "Senior (65+)"


class Sex(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other / Not specified"


class SymptomType(str, Enum):
    EXTERNAL = "External injury / skin wound"
    INTERNAL = "Internal / organ related"
    MSK = "Musculoskeletal / bone / joint"
    NEURO = "Neurological"
    RESPIRATORY = "Respiratory / chest"
    GASTRO = "Abdominal / gastrointestinal"
    OTHER = "Other / unsure"


class Duration(str, Enum):
    HOURS = "Hours"
    DAYS = "Days"
    WEEKS = "Weeks"
    MONTHS = "Months"
    CHRONIC = "Chronic / long-term"


class PainSeverity(str, Enum):
    NONE = "0 - No pain"
    MILD = "1-3 - Mild"
    MODERATE = "4-6 - Moderate"
    SEVERE = "7-8 - Severe"
    EXTREME = "9-10 - Extreme"


class ReportFocus(str, Enum):
    RADIOLOGY = "Detailed radiology-style report only"
    DIAGNOSIS = "Diagnosis + differential diagnosis"
    TREATMENT = "Step-by-step treatment guidance (general advice)"
    LAYMAN = "Simple explanation in layman language"
    COMBINED = "Combination of professional report + simple explanation"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    EMERGENCY = "emergency"


class PlaceType(str, Enum):
    HOSPITAL = "Hospital"
    PHARMACY = "Pharmacy"
    CLINIC = "Clinic"
    OTHER = "Other"


class PlaceFilter(str, Enum):
    HOSPITAL = "Hospital"
    PHARMACY = "Pharmacy"
    BOTH = "Both"


class Language(str, Enum):
    ENGLISH = "English"
    HINDI = "Hindi"
    MARATHI = "Marathi"


class PatientDetails(BaseModel):
    name: str = ""
    ageGroup: AgeGroup = AgeGroup.ADULT
    ageYears: Optional[int] = Field(default=None, ge=0, le=130)
    sex: Sex = Sex.MALE
    symptomType: SymptomType = SymptomType.OTHER
    duration: Duration = Duration.DAYS
    painSeverity: PainSeverity = PainSeverity.MILD
    reportFocus: ReportFocus = ReportFocus.LAYMAN


class ImageAttachment(BaseModel):
    mimeType: str
    data: str  # base64, no data: prefix

    @field_validator("mimeType")
    @classmethod
    def must_be_image(cls, value: str) -> str:
        if not value.startswith("image/"):
            raise ValueError("only image attachments are supported")
        return value

    def data_url(self) -> str:
        return f"data:{self.mimeType};base64,{self.data}"


class Differential(BaseModel):
    condition: str
    reasoning: str = ""
    confidence: float = 0

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        return _clamp(value)


class SuggestedMedicine(BaseModel):
    name: str
    form: str = ""
    dose: str = ""
    frequency: str = ""
    timing: str = ""


def _coerce_risk(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class StructuredAIResponse(BaseModel):
    riskLevel: RiskLevel = RiskLevel.MODERATE
    summary: str
    differentialDiagnosis: List[Differential] = []
    recommendedActions: List[str] = []
    suggestedMedications: List[SuggestedMedicine] = []
    redFlags: List[str] = []
    confidenceScore: float = 0

    @field_validator("riskLevel", mode="before")
    @classmethod
    def normalize_risk(cls, value):
        return _coerce_risk(value)

    @field_validator("confidenceScore", mode="before")
    @classmethod
    def clamp_score(cls, value):
        return _clamp(value)


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: Role
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    attachments: List[str] = []
    structuredResponse: Optional[StructuredAIResponse] = None


class ChatSession(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str = "New Consultation"
    startTime: datetime = Field(default_factory=utcnow)
    lastUpdated: datetime = Field(default_factory=utcnow)
    messages: List[ChatMessage] = []
    patientSummary: PatientDetails = Field(default_factory=PatientDetails)


class ReportPatient(BaseModel):
    name: str = ""
    ageYears: Optional[int] = None
    sex: Optional[str] = None


class PossibleCause(BaseModel):
    name: str
    confidence: Optional[str] = None


class ReportPayload(BaseModel):
    reportId: str = ""
    generatedAt: Optional[datetime] = None
    patient: ReportPatient = Field(default_factory=ReportPatient)
    riskLevel: RiskLevel
    clinicalSummary: str
    possibleCauses: List[PossibleCause] = []
    suggestedMedicines: List[SuggestedMedicine] = []
    recommendedActions: List[str] = []
    redFlags: List[str] = []
    disclaimer: str = ""
    generatedBy: str = "MedScan AI"

    @field_validator("riskLevel", mode="before")
    @classmethod
    def normalize_risk(cls, value):
        return _coerce_risk(value)


class Coordinates(BaseModel):
    lat: float
    lng: float


class CarePlace(BaseModel):
    id: str = ""
    name: str
    type: PlaceType = PlaceType.OTHER
    address: str = ""
    distanceKm: float = 0
    rating: Optional[float] = None
    userRatingsTotal: Optional[int] = None
    isOpenNow: Optional[bool] = None
    openingHours: Optional[str] = None
    phoneNumber: Optional[str] = None
    googleMapsUrl: Optional[str] = None
    summary: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    priorityScore: Optional[float] = None
    isTopRecommendation: bool = False

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value):
        for place_type in PlaceType:
            if isinstance(value, str) and value.strip().lower() == place_type.value.lower():
                return place_type
        return PlaceType.OTHER

    @field_validator("priorityScore", mode="before")
    @classmethod
    def clamp_priority(cls, value):
        if value is None:
            return None
        return _clamp(value)


class Contact(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    relation: str = ""
    phone: str = Field(..., min_length=3)
    language: Language = Language.ENGLISH


class UserHealthProfile(BaseModel):
    full_name: str = ""
    age_group: str = "31–45"
    gender: str = "Prefer not to say"
    conditions: List[str] = []
    allergies: str = ""
    medications: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    blood_group: str = ""
    preferred_language: str = "English"
    user_id: Optional[str] = None
    updated_at: Optional[str] = None


# --- request bodies ---

class ReportRequest(BaseModel):
    patientDetails: PatientDetails = Field(default_factory=PatientDetails)
    clinicalContext: str = ""
    image: Optional[ImageAttachment] = None


class ChatRequest(BaseModel):
    message: str = ""
    image: Optional[ImageAttachment] = None

    @model_validator(mode="after")
    def needs_content(self):
        if not self.message.strip() and self.image is None:
            raise ValueError("message or image is required")
        return self


class PlaceSearchRequest(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    filterType: PlaceFilter = PlaceFilter.BOTH
    radiusKm: float = Field(default=5, gt=0, le=50)
    manualLocation: Optional[str] = None

    @model_validator(mode="after")
    def needs_location(self):
        has_coords = self.lat is not None and self.lng is not None
        if not has_coords and not (self.manualLocation or "").strip():
            raise ValueError("coordinates or a manual location is required")
        return self


class FamilyMessageRequest(BaseModel):
    medicalSummary: str = Field(..., min_length=1)
    patientName: str = "Me"
    contactIds: List[str] = Field(..., min_length=1)

    @field_validator("patientName")
    @classmethod
    def default_name(cls, value: str) -> str:
        return value.strip() or "Me"
