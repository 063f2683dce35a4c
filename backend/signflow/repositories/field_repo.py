"""Field Repository - Field layouts per document"""
from typing import Optional

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import FIELD_CONFIG_COLLECTION, to_storage
from ..domain.models import FieldConfiguration
from ..utils.logger import get_logger

logger = get_logger(__name__)


class FieldConfigurationRepository:
    """Repository for field configurations (one per document)"""

    def __init__(self, db: Database):
        self._configs: Collection = db[FIELD_CONFIG_COLLECTION]

    def upsert(self, config: FieldConfiguration) -> FieldConfiguration:
        """Replace the document's field layout, keeping its original created_at"""
        doc = to_storage(config)
        created_at = doc.pop("created_at")
        result = self._configs.find_one_and_update(
            {"document_id": config.document_id},
            {
                "$set": doc,
                "$setOnInsert": {"created_at": created_at},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        logger.info(
            f"Saved {len(config.fields)} fields for document: {config.document_id}",
            extra={"actor_id": config.owner_id}
        )
        result.pop("_id", None)
        return FieldConfiguration.model_validate(result)

    def get(self, document_id: str) -> Optional[FieldConfiguration]:
        doc = self._configs.find_one({"document_id": document_id})
        if doc:
            doc.pop("_id", None)
            return FieldConfiguration.model_validate(doc)
        return None
