"""Employee Directory API - Employees and the reporting hierarchy"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field

from ..deps import get_current_actor_dep, require_roles
from ...domain.models import ActorContext, Employee
from ...domain.enums import Role
from ...domain.errors import DomainError
from ...engine.hierarchy import HierarchyReport
from ...services.employee_service import EmployeeService
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

require_directory_admin = require_roles(Role.HR, Role.RMG, Role.SUPER_ADMIN)


class CreateEmployeeRequest(BaseModel):
    employee_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    role: Optional[Role] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    reporting_manager_id: Optional[str] = None
    has_login_access: bool = False


class UpdateEmployeeRequest(BaseModel):
    """Partial update; only fields present in the body are changed"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    role: Optional[Role] = None
    reporting_manager_id: Optional[str] = None
    has_login_access: Optional[bool] = None
    is_active: Optional[bool] = None


@router.get("", response_model=List[Employee])
async def list_employees(
    role: Optional[Role] = Query(None),
    department: Optional[str] = Query(None),
    active_only: bool = Query(True),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    return EmployeeService().list_employees(
        role=role, department=department, active_only=active_only, skip=skip, limit=limit
    )


@router.get("/hierarchy/audit", response_model=HierarchyReport)
async def audit_hierarchy(actor: ActorContext = Depends(require_directory_admin)):
    """Employees without a manager, references to unknown managers and reporting cycles"""
    return EmployeeService().audit_hierarchy()


@router.get("/{employee_id}", response_model=Employee)
async def get_employee(
    employee_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return EmployeeService().get_employee(employee_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{employee_id}/reports", response_model=List[Employee])
async def list_direct_reports(
    employee_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return EmployeeService().list_direct_reports(employee_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("", response_model=Employee, status_code=status.HTTP_201_CREATED)
async def create_employee(
    request: CreateEmployeeRequest,
    actor: ActorContext = Depends(require_directory_admin)
):
    """Create an employee; the reporting manager must exist and must not close a cycle"""
    try:
        return EmployeeService().create_employee(**request.model_dump())

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/{employee_id}", response_model=Employee)
async def update_employee(
    employee_id: str,
    request: UpdateEmployeeRequest,
    actor: ActorContext = Depends(require_directory_admin)
):
    try:
        return EmployeeService().update_employee(employee_id, request.model_dump(exclude_unset=True))

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{employee_id}", response_model=Employee)
async def deactivate_employee(
    employee_id: str,
    actor: ActorContext = Depends(require_directory_admin)
):
    """Deactivate; employees are never hard-deleted"""
    try:
        return EmployeeService().deactivate_employee(employee_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
