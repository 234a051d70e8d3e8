import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, Text, DateTime, Date, ForeignKey,
    Enum as SAEnum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, validates
from dotcompliance.core.errors import PartyKindError
from dotcompliance.models.base import Base
import enum

__all__ = [
    "PartyStatus", "RoleKind", "IssueType", "ViolationType",
    "CafPriority", "CafCategory", "CafStatus", "SignatureType",
    "InspectionStatus",
    "Party", "Person", "Organization", "Equipment", "Consultant",
    "Location", "Role", "Staff",
    "Issue", "RoadsideInspection", "Accident", "License", "Training",
    "DrugAlcoholTest", "Registration", "Violation",
    "CorrectiveActionForm", "CafSignature", "ActivityLog",
]


class PartyStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class RoleKind(str, enum.Enum):
    MASTER = "master"
    ORGANIZATION = "organization"
    LOCATION = "location"
    CONSULTANT = "consultant"
    STAFF = "staff"
    ADMIN = "admin"
    MANAGER = "manager"
    DRIVER = "driver"
    EQUIPMENT = "equipment"


class IssueType(str, enum.Enum):
    ROADSIDE_INSPECTION = "roadside_inspection"
    ACCIDENT = "accident"
    LICENSE = "license"
    TRAINING = "training"
    DRUG_ALCOHOL = "drug_alcohol"
    REGISTRATION = "registration"


class ViolationType(str, enum.Enum):
    DRIVER_PERFORMANCE = "Driver_Performance"
    DRIVER_QUALIFICATION = "Driver_Qualification"
    EQUIPMENT = "Equipment"
    COMPANY = "Company"


class CafPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CafCategory(str, enum.Enum):
    DRIVER_PERFORMANCE = "DRIVER_PERFORMANCE"
    DRIVER_QUALIFICATION = "DRIVER_QUALIFICATION"
    EQUIPMENT_MAINTENANCE = "EQUIPMENT_MAINTENANCE"
    COMPANY_OPERATIONS = "COMPANY_OPERATIONS"
    OTHER = "OTHER"


class CafStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"


class SignatureType(str, enum.Enum):
    COMPLETION = "COMPLETION"
    APPROVAL = "APPROVAL"


class InspectionStatus(str, enum.Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


def gen_uuid():
    return str(uuid.uuid4())


def _enum(enum_cls, name):
    return SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class Party(Base):
    __tablename__ = "parties"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    user_id = Column(String(255), nullable=True, index=True)
    status = Column(_enum(PartyStatus, "party_status_enum"), nullable=False, default=PartyStatus.ACTIVE)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    person = relationship("Person", back_populates="party", uselist=False)
    organization = relationship("Organization", back_populates="party", uselist=False)
    equipment = relationship("Equipment", back_populates="party", uselist=False)
    consultant = relationship("Consultant", back_populates="party", uselist=False)
    roles = relationship("Role", back_populates="party")

    KINDS = ("person", "organization", "equipment", "consultant")

    @property
    def kind(self) -> str | None:
        for name in self.KINDS:
            if getattr(self, name) is not None:
                return name
        return None

    @validates(*KINDS)
    def _validate_single_kind(self, key, value):
        if value is not None:
            current = self.kind
            if current is not None and current != key:
                raise PartyKindError(f"Party is already a {current}")
        return value


class Person(Base):
    __tablename__ = "persons"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    license_number = Column(String(50), nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    party = relationship("Party", back_populates="person")


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    dot_number = Column(String(20), nullable=True, unique=True)
    mc_number = Column(String(20), nullable=True)
    ein_number = Column(String(20), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    party = relationship("Party", back_populates="organization")
    locations = relationship("Location", back_populates="organization")


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, unique=True)
    unit_number = Column(String(50), nullable=False)
    vin = Column(String(50), nullable=True)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)
    plate_number = Column(String(20), nullable=True)
    unit_type = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    party = relationship("Party", back_populates="equipment")


class Consultant(Base):
    __tablename__ = "consultants"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, unique=True)
    license_number = Column(String(50), nullable=True)
    years_experience = Column(Integer, default=0)
    bio = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    party = relationship("Party", back_populates="consultant")


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    is_main_location = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="locations")

    __table_args__ = (
        Index("idx_location_org", "organization_id"),
    )


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False)
    role_type = Column(_enum(RoleKind, "role_kind_enum"), nullable=False)
    # Not a foreign key: grants can outlive the organization they target.
    organization_id = Column(String(36), nullable=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default="active")
    is_active = Column(Boolean, default=True, nullable=False)
    start_date = Column(DateTime, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    party = relationship("Party", back_populates="roles")
    location = relationship("Location")

    __table_args__ = (
        Index("idx_role_party", "party_id"),
        Index("idx_role_org", "organization_id"),
        Index("idx_role_active", "is_active"),
    )


class Staff(Base):
    __tablename__ = "staff"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False)
    position = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)
    can_sign_cafs = Column(Boolean, default=False)
    can_approve_cafs = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    party = relationship("Party")


class Issue(Base):
    __tablename__ = "issues"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    party_id = Column(String(36), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False)
    issue_type = Column(_enum(IssueType, "issue_type_enum"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="open")
    priority = Column(String(20), default="medium")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    party = relationship("Party")
    roadside_inspection = relationship("RoadsideInspection", back_populates="issue", uselist=False)
    accident = relationship("Accident", back_populates="issue", uselist=False)
    license = relationship("License", back_populates="issue", uselist=False)
    training = relationship("Training", back_populates="issue", uselist=False)
    drug_alcohol_test = relationship("DrugAlcoholTest", back_populates="issue", uselist=False)
    registration = relationship("Registration", back_populates="issue", uselist=False)

    __table_args__ = (
        Index("idx_issue_party", "party_id"),
        Index("idx_issue_type", "issue_type"),
    )


class RoadsideInspection(Base):
    __tablename__ = "roadside_inspections"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    equipment_id = Column(String(36), ForeignKey("equipment.id", ondelete="SET NULL"), nullable=True)
    report_number = Column(String(50), nullable=True)
    inspection_date = Column(DateTime, default=datetime.utcnow)
    inspection_level = Column(String(10), nullable=True)
    location_text = Column(String(255), nullable=True)
    officer_name = Column(String(100), nullable=True)
    status = Column(_enum(InspectionStatus, "inspection_status_enum"), default=InspectionStatus.PENDING)
    completed_at = Column(DateTime, nullable=True)

    issue = relationship("Issue", back_populates="roadside_inspection")
    equipment = relationship("Equipment")
    violations = relationship("Violation", back_populates="roadside_inspection")


class Accident(Base):
    __tablename__ = "accidents"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    accident_date = Column(DateTime, default=datetime.utcnow)
    location_text = Column(String(255), nullable=True)
    fatalities = Column(Integer, default=0)
    injuries = Column(Integer, default=0)
    is_towed = Column(Boolean, default=False)
    is_hazmat = Column(Boolean, default=False)
    is_citation_issued = Column(Boolean, default=False)

    issue = relationship("Issue", back_populates="accident")
    violations = relationship("Violation", back_populates="accident")


class License(Base):
    __tablename__ = "licenses"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    license_number = Column(String(50), nullable=True)
    license_state = Column(String(2), nullable=True)
    license_class = Column(String(10), nullable=True)
    expiration_date = Column(Date, nullable=True)

    issue = relationship("Issue", back_populates="license")


class Training(Base):
    __tablename__ = "trainings"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    training_type = Column(String(100), nullable=False)
    completed_on = Column(Date, nullable=True)
    expiration_date = Column(Date, nullable=True)

    issue = relationship("Issue", back_populates="training")


class DrugAlcoholTest(Base):
    __tablename__ = "drug_alcohol_tests"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    test_type = Column(String(50), nullable=True)
    result = Column(String(50), nullable=True)
    collected_on = Column(Date, nullable=True)

    issue = relationship("Issue", back_populates="drug_alcohol_test")


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, unique=True)
    plate_number = Column(String(20), nullable=True)
    state = Column(String(2), nullable=True)
    expiration_date = Column(Date, nullable=True)

    issue = relationship("Issue", back_populates="registration")


class Violation(Base):
    __tablename__ = "violations"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    roadside_inspection_id = Column(String(36), ForeignKey("roadside_inspections.id", ondelete="CASCADE"), nullable=True)
    accident_id = Column(String(36), ForeignKey("accidents.id", ondelete="CASCADE"), nullable=True)
    violation_code = Column(String(50), nullable=False)
    description = Column(Text, nullable=False, default="")
    violation_type = Column(_enum(ViolationType, "violation_type_enum"), nullable=True)
    out_of_service = Column(Boolean, default=False)
    out_of_service_date = Column(DateTime, nullable=True)
    severity = Column(Integer, nullable=True)
    inspector_comments = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    roadside_inspection = relationship("RoadsideInspection", back_populates="violations")
    accident = relationship("Accident", back_populates="violations")
    corrective_action_forms = relationship("CorrectiveActionForm", back_populates="violation")


class CorrectiveActionForm(Base):
    __tablename__ = "corrective_action_forms"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    caf_number = Column(String(20), nullable=False, unique=True)
    violation_id = Column(String(36), ForeignKey("violations.id", ondelete="SET NULL"), nullable=True)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(_enum(CafPriority, "caf_priority_enum"), default=CafPriority.MEDIUM)
    category = Column(_enum(CafCategory, "caf_category_enum"), default=CafCategory.OTHER)
    status = Column(_enum(CafStatus, "caf_status_enum"), default=CafStatus.ASSIGNED)
    assigned_staff_id = Column(String(36), ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    assigned_by = Column(String(255), nullable=True)
    due_date = Column(DateTime, nullable=True)
    requires_approval = Column(Boolean, default=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    violation = relationship("Violation", back_populates="corrective_action_forms")
    organization = relationship("Organization")
    assigned_staff = relationship("Staff")
    signatures = relationship("CafSignature", back_populates="caf", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_caf_org", "organization_id"),
        Index("idx_caf_status", "status"),
        Index("idx_caf_due", "due_date"),
    )


class CafSignature(Base):
    __tablename__ = "caf_signatures"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    caf_id = Column(String(36), ForeignKey("corrective_action_forms.id", ondelete="CASCADE"), nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    signature_type = Column(_enum(SignatureType, "signature_type_enum"), nullable=False)
    digital_signature = Column(Text, nullable=False)
    ip_address = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    signed_at = Column(DateTime, default=datetime.utcnow)

    caf = relationship("CorrectiveActionForm", back_populates="signatures")
    staff = relationship("Staff")

    __table_args__ = (
        UniqueConstraint("caf_id", "staff_id", "signature_type", name="uq_caf_staff_signature"),
    )


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    principal_id = Column(String(255), nullable=True)
    organization_id = Column(String(36), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_created", "created_at"),
    )
