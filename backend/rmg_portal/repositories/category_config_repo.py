"""Category Config Repository - Sub-category approval and routing configuration"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import SubCategoryConfig
from ..domain.enums import HighLevelCategory
from ..domain.errors import ConfigNotFoundError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CategoryConfigRepository:
    """Repository for sub-category configurations"""

    def __init__(self):
        self._configs: Collection = get_collection("subcategory_configs")

    @staticmethod
    def _to_model(doc: Dict[str, Any]) -> SubCategoryConfig:
        doc.pop("_id", None)
        return SubCategoryConfig.model_validate(doc)

    def create_config(self, config: SubCategoryConfig) -> SubCategoryConfig:
        """
        Insert a configuration

        Raises:
            pymongo.errors.DuplicateKeyError: (category, sub-category) already configured
        """
        doc = config.model_dump()
        doc["_id"] = config.config_id
        self._configs.insert_one(doc)
        logger.info(f"Created config {config.config_id} for {config.high_level_category.value}/{config.sub_category}")
        return config

    def get_config(self, config_id: str) -> Optional[SubCategoryConfig]:
        doc = self._configs.find_one({"config_id": config_id})
        return self._to_model(doc) if doc else None

    def get_config_or_raise(self, config_id: str) -> SubCategoryConfig:
        config = self.get_config(config_id)
        if not config:
            raise ConfigNotFoundError(f"Configuration {config_id} not found", details={"config_id": config_id})
        return config

    def find_active(self, category: HighLevelCategory, sub_category: str) -> Optional[SubCategoryConfig]:
        """Active configuration for (category, sub-category), if any"""
        doc = self._configs.find_one({
            "high_level_category": category.value,
            "sub_category": sub_category,
            "is_active": True,
        })
        return self._to_model(doc) if doc else None

    def find_by_key(self, category: HighLevelCategory, sub_category: str) -> Optional[SubCategoryConfig]:
        doc = self._configs.find_one({
            "high_level_category": category.value,
            "sub_category": sub_category,
        })
        return self._to_model(doc) if doc else None

    def list_configs(
        self,
        category: Optional[HighLevelCategory] = None,
        active_only: bool = False
    ) -> List[SubCategoryConfig]:
        query: Dict[str, Any] = {}
        if category:
            query["high_level_category"] = category.value
        if active_only:
            query["is_active"] = True
        cursor = self._configs.find(query).sort([
            ("high_level_category", ASCENDING),
            ("order", ASCENDING),
            ("sub_category", ASCENDING),
        ])
        return [self._to_model(doc) for doc in cursor]

    def replace_config(self, config: SubCategoryConfig) -> SubCategoryConfig:
        doc = config.model_dump()
        doc["updated_at"] = utc_now()
        result = self._configs.find_one_and_update(
            {"config_id": config.config_id},
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise ConfigNotFoundError(f"Configuration {config.config_id} not found")
        return self._to_model(result)
