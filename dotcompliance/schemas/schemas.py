from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional


class ScopeResponse(BaseModel):
    principal_id: str
    role_type: str
    is_master: bool
    is_consultant: bool
    owned_organization_id: Optional[str] = None
    organization_ids: list[str] = []
    role_kind_by_organization: dict[str, str] = {}


class OnboardRequest(BaseModel):
    first_name: str
    last_name: str
    role_type: str
    organization_name: Optional[str] = None
    email: Optional[str] = None


class OrganizationCreate(BaseModel):
    name: str
    dot_number: Optional[str] = None
    phone: Optional[str] = None
    ein_number: Optional[str] = None


class OrganizationResponse(BaseModel):
    id: str
    party_id: str
    name: str
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ClaimRequest(BaseModel):
    organization_ids: list[str]


class LocationCreate(BaseModel):
    name: str
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    is_main_location: bool = False


class LocationResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    is_main_location: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DriverCreate(BaseModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    birth_date: Optional[date] = None
    location_id: Optional[str] = None


class DriverResponse(BaseModel):
    id: str
    party_id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    organization_id: Optional[str] = None
    location_id: Optional[str] = None
    role_id: Optional[str] = None


class DriverDeactivate(BaseModel):
    role_id: str
    end_date: Optional[datetime] = None
    reason: Optional[str] = None


class EquipmentCreate(BaseModel):
    unit_number: str
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    plate_number: Optional[str] = None
    unit_type: Optional[str] = None
    location_id: Optional[str] = None


class EquipmentResponse(BaseModel):
    id: str
    party_id: str
    unit_number: str
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    plate_number: Optional[str] = None
    unit_type: Optional[str] = None
    organization_id: Optional[str] = None
    location_id: Optional[str] = None


class RoleGrant(BaseModel):
    party_id: str
    role_type: str
    organization_id: Optional[str] = None
    location_id: Optional[str] = None


class RoleDeactivate(BaseModel):
    end_date: Optional[datetime] = None
    reason: Optional[str] = None


class RoleResponse(BaseModel):
    id: str
    party_id: str
    role_type: str
    organization_id: Optional[str] = None
    location_id: Optional[str] = None
    status: Optional[str] = None
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ViolationCreate(BaseModel):
    violation_code: str
    description: str = ""
    violation_type: Optional[str] = None
    out_of_service: bool = False
    out_of_service_date: Optional[datetime] = None
    severity: Optional[int] = None
    inspector_comments: Optional[str] = None


class ViolationResponse(BaseModel):
    id: str
    violation_code: str
    description: str
    violation_type: Optional[str] = None
    out_of_service: bool
    severity: Optional[int] = None
    has_caf: bool = False


class RoadsideInspectionCreate(BaseModel):
    party_id: str
    title: str
    equipment_id: Optional[str] = None
    report_number: Optional[str] = None
    inspection_date: Optional[datetime] = None
    inspection_level: Optional[str] = None
    location_text: Optional[str] = None
    officer_name: Optional[str] = None
    violations: list[ViolationCreate] = []


class RoadsideInspectionResponse(BaseModel):
    id: str
    issue_id: str
    party_id: str
    title: str
    report_number: Optional[str] = None
    inspection_date: Optional[datetime] = None
    inspection_level: Optional[str] = None
    status: str
    equipment_id: Optional[str] = None
    violations: list[ViolationResponse] = []


class AccidentCreate(BaseModel):
    party_id: str
    title: str
    accident_date: Optional[datetime] = None
    location_text: Optional[str] = None
    fatalities: int = 0
    injuries: int = 0
    is_towed: bool = False
    is_hazmat: bool = False
    is_citation_issued: bool = False
    violations: list[ViolationCreate] = []


class AccidentResponse(BaseModel):
    id: str
    issue_id: str
    party_id: str
    title: str
    accident_date: Optional[datetime] = None
    location_text: Optional[str] = None
    fatalities: int
    injuries: int
    violations: list[ViolationResponse] = []


class IssueCreate(BaseModel):
    party_id: str
    issue_type: str
    title: str
    description: Optional[str] = None
    detail: dict = Field(default_factory=dict)


class IssueResponse(BaseModel):
    id: str
    party_id: str
    issue_type: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    created_at: datetime
    detail: dict = {}


class CafResponse(BaseModel):
    id: str
    caf_number: str
    organization_id: str
    violation_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: str
    category: str
    status: str
    assigned_staff_id: Optional[str] = None
    due_date: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    signatures: list[dict] = []


class CafStatusUpdate(BaseModel):
    status: str


class CafSignRequest(BaseModel):
    signature_type: str
    staff_id: str
    digital_signature: str
    notes: Optional[str] = None


class StaffCreate(BaseModel):
    party_id: str
    position: Optional[str] = None
    department: Optional[str] = None
    can_sign_cafs: bool = False
    can_approve_cafs: bool = False


class StaffUpdate(BaseModel):
    position: Optional[str] = None
    department: Optional[str] = None
    can_sign_cafs: Optional[bool] = None
    can_approve_cafs: Optional[bool] = None
    is_active: Optional[bool] = None


class StaffResponse(BaseModel):
    id: str
    party_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    can_sign_cafs: bool
    can_approve_cafs: bool
    is_active: bool


class ActivityLogResponse(BaseModel):
    id: str
    principal_id: Optional[str] = None
    organization_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Optional[dict] = None
    created_at: datetime
