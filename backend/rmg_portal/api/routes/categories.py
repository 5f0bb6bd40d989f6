"""Sub-Category Configuration API - Approval levels and routing per category"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep, require_roles
from ...domain.models import ActorContext, SubCategoryConfig, ApprovalLevelConfig, ApprovalPlan
from ...domain.enums import HighLevelCategory, SUPERVISOR_ROLES
from ...domain.errors import DomainError
from ...services.category_config_service import CategoryConfigService
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

require_config_admin = require_roles(*sorted(SUPERVISOR_ROLES, key=lambda r: r.value))


# =============================================================================
# Request Models
# =============================================================================

class CreateConfigRequest(BaseModel):
    high_level_category: HighLevelCategory
    sub_category: str = Field(..., min_length=1, max_length=100)
    specialist_queue: str = Field(..., min_length=1)
    requires_approval: bool = False
    approval_levels: List[ApprovalLevelConfig] = Field(default_factory=list)
    processing_queue: Optional[str] = None
    order: int = 999
    is_active: bool = True


class UpdateConfigRequest(BaseModel):
    """Partial update; omitted fields keep their value"""
    sub_category: Optional[str] = Field(None, min_length=1, max_length=100)
    specialist_queue: Optional[str] = None
    requires_approval: Optional[bool] = None
    approval_levels: Optional[List[ApprovalLevelConfig]] = None
    processing_queue: Optional[str] = None
    order: Optional[int] = None
    is_active: Optional[bool] = None


class ConfigAuditFinding(BaseModel):
    config_id: str
    high_level_category: HighLevelCategory
    sub_category: str
    problems: List[str]


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=List[SubCategoryConfig])
async def list_configs(
    category: Optional[HighLevelCategory] = Query(None),
    active_only: bool = Query(False),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """Configurations ordered by category and display order"""
    return CategoryConfigService().list_configs(category=category, active_only=active_only)


@router.get("/resolve", response_model=ApprovalPlan)
async def resolve_plan(
    category: HighLevelCategory = Query(...),
    sub_category: str = Query(..., min_length=1),
    actor: ActorContext = Depends(get_current_actor_dep)
):
    """
    Preview the approval chain a new ticket would get

    A missing configuration is not an error: the plan says approval is
    bypassed and names the category's default queue.
    """
    return CategoryConfigService().resolve_approval_plan(category, sub_category)


@router.get("/audit", response_model=List[ConfigAuditFinding])
async def audit_configs(actor: ActorContext = Depends(require_config_admin)):
    """Active configurations that require approval but cannot produce a chain"""
    return CategoryConfigService().audit_configs()


@router.get("/{config_id}", response_model=SubCategoryConfig)
async def get_config(
    config_id: str,
    actor: ActorContext = Depends(get_current_actor_dep)
):
    try:
        return CategoryConfigService().get_config(config_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("", response_model=SubCategoryConfig, status_code=status.HTTP_201_CREATED)
async def create_config(
    request: CreateConfigRequest,
    actor: ActorContext = Depends(require_config_admin)
):
    try:
        config = CategoryConfigService().create_config(**request.model_dump())
        logger.info(
            f"Config {config.config_id} created for {config.high_level_category.value}/{config.sub_category}",
            extra={"actor_id": actor.employee_id, "action": "config_created"}
        )
        return config

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{config_id}", response_model=SubCategoryConfig)
async def update_config(
    config_id: str,
    request: UpdateConfigRequest,
    actor: ActorContext = Depends(require_config_admin)
):
    try:
        updates: Dict[str, Any] = request.model_dump(exclude_unset=True)
        return CategoryConfigService().update_config(config_id, updates)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/{config_id}", response_model=SubCategoryConfig)
async def deactivate_config(
    config_id: str,
    actor: ActorContext = Depends(require_config_admin)
):
    """Soft delete: the configuration stays for existing tickets but stops matching new ones"""
    try:
        return CategoryConfigService().deactivate_config(config_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
