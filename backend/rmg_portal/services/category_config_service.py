"""Category Config Service - Approval requirement lookup and config administration"""
from typing import Any, Dict, List, Optional
from pymongo.errors import DuplicateKeyError

from ..domain.models import (
    SubCategoryConfig, ApprovalPlan, ApprovalLevelPlan, ApprovalLevelConfig
)
from ..domain.enums import HighLevelCategory
from ..domain.errors import ConfigurationValidationError, AlreadyExistsError
from ..repositories.category_config_repo import CategoryConfigRepository
from ..utils.idgen import generate_config_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CategoryConfigService:
    """Service for sub-category configuration"""

    def __init__(self):
        self.repo = CategoryConfigRepository()

    # =========================================================================
    # Lookup
    # =========================================================================

    def resolve_approval_plan(self, category: HighLevelCategory, sub_category: str) -> ApprovalPlan:
        """
        Decide whether a (category, sub-category) needs approval

        Missing or inactive configuration means no approval: the ticket is
        routed straight to the module's default queue. That is logged, not
        raised.
        """
        config = self.repo.find_active(category, sub_category)
        if config is None:
            logger.info(
                f"No active config for {category.value}/{sub_category}; approval bypassed",
                extra={"action": "approval_bypassed"}
            )
            return ApprovalPlan(required=False, bypassed=True, specialist_queue=category.value)

        queue = config.specialist_queue or category.value
        levels = [
            ApprovalLevelPlan(level=lvl.level, approvers=list(lvl.approvers))
            for lvl in config.enabled_levels()
        ]
        if not config.requires_approval or not levels:
            if config.requires_approval:
                logger.warning(
                    f"Config {config.config_id} requires approval but has no enabled level with approvers",
                    extra={"action": "approval_bypassed"}
                )
            return ApprovalPlan(
                required=False,
                bypassed=config.requires_approval,
                specialist_queue=queue,
                config_id=config.config_id,
            )

        return ApprovalPlan(required=True, levels=levels, specialist_queue=queue, config_id=config.config_id)

    def resolve_specialist_queue(self, category: HighLevelCategory, sub_category: str) -> str:
        config = self.repo.find_active(category, sub_category)
        if config and config.specialist_queue:
            return config.specialist_queue
        return category.value

    # =========================================================================
    # Administration
    # =========================================================================

    @staticmethod
    def _validate(config: SubCategoryConfig) -> None:
        problems = config.approval_problems()
        if problems:
            raise ConfigurationValidationError(
                "Invalid approval configuration",
                details={"field": "approval_levels", "problems": problems}
            )

    def create_config(
        self,
        high_level_category: HighLevelCategory,
        sub_category: str,
        specialist_queue: str,
        requires_approval: bool = False,
        approval_levels: Optional[List[ApprovalLevelConfig]] = None,
        processing_queue: Optional[str] = None,
        order: int = 999,
        is_active: bool = True
    ) -> SubCategoryConfig:
        now = utc_now()
        config = SubCategoryConfig(
            config_id=generate_config_id(),
            high_level_category=high_level_category,
            sub_category=sub_category.strip(),
            requires_approval=requires_approval,
            is_active=is_active,
            specialist_queue=specialist_queue,
            processing_queue=processing_queue,
            order=order,
            approval_levels=approval_levels or [],
            created_at=now,
            updated_at=now,
        )
        self._validate(config)

        try:
            return self.repo.create_config(config)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"{high_level_category.value}/{sub_category} is already configured",
                details={"high_level_category": high_level_category.value, "sub_category": sub_category}
            )

    def get_config(self, config_id: str) -> SubCategoryConfig:
        return self.repo.get_config_or_raise(config_id)

    def list_configs(
        self,
        category: Optional[HighLevelCategory] = None,
        active_only: bool = False
    ) -> List[SubCategoryConfig]:
        return self.repo.list_configs(category=category, active_only=active_only)

    def update_config(self, config_id: str, updates: Dict[str, Any]) -> SubCategoryConfig:
        """Apply a partial update; the result must still be a valid configuration"""
        current = self.repo.get_config_or_raise(config_id)
        data = current.model_dump()
        data.update({k: v for k, v in updates.items() if v is not None})
        data["config_id"] = current.config_id
        config = SubCategoryConfig.model_validate(data)
        self._validate(config)

        try:
            updated = self.repo.replace_config(config)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"{config.high_level_category.value}/{config.sub_category} is already configured"
            )
        logger.info(f"Updated config {config_id}", extra={"action": "config_updated"})
        return updated

    def deactivate_config(self, config_id: str) -> SubCategoryConfig:
        config = self.repo.get_config_or_raise(config_id)
        config.is_active = False
        return self.repo.replace_config(config)

    def audit_configs(self) -> List[Dict[str, Any]]:
        """Active configurations that break the approval invariant"""
        findings = []
        for config in self.repo.list_configs(active_only=True):
            problems = config.approval_problems()
            if problems:
                findings.append({
                    "config_id": config.config_id,
                    "high_level_category": config.high_level_category.value,
                    "sub_category": config.sub_category,
                    "problems": problems,
                })
        return findings
