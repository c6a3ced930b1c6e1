"""
Site records.

One active Site per (user, portfolio). A publish attempt moves an existing
Site to ``building``; success rewrites its serving fields, failure only
records ``failed`` and the error text, so a previously working site keeps
serving. Unpublishing is a soft delete.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, to_object_id, utcnow
from schemas import Site

logger = logging.getLogger(__name__)

COLLECTION = "site"

DRAFT = "draft"
BUILDING = "building"
SUCCESS = "success"
FAILED = "failed"

MAX_REFERRER_LENGTH = 100
CONFIG_FIELDS = ("title", "description", "custom_domain")


class SiteRepository:
    def __init__(self, database: Database):
        self.database = database
        self.collection = database[COLLECTION]

    def get(self, site_id) -> Optional[dict]:
        return self.collection.find_one({"_id": site_id})

    def find_active_by_subdomain(self, subdomain: str) -> Optional[dict]:
        return self.collection.find_one({"subdomain": subdomain, "is_active": True})

    def find_active_for_portfolio(self, user_id: str, portfolio_id: str) -> Optional[dict]:
        return self.collection.find_one({"user_id": str(user_id), "portfolio_id": str(portfolio_id), "is_active": True})

    def list_for_user(self, user_id: str, include_inactive: bool = False) -> List[dict]:
        query: Dict[str, Any] = {"user_id": str(user_id)}
        if not include_inactive:
            query["is_active"] = True
        return list(self.collection.find(query).sort("last_deployed_at", -1))

    def _set(self, site_id, fields: Dict[str, Any]) -> Optional[dict]:
        fields = {**fields, "updated_at": utcnow()}
        return self.collection.find_one_and_update(
            {"_id": site_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )

    def mark_building(self, site: dict) -> dict:
        return self._set(site["_id"], {"deployment_status": BUILDING}) or site

    def record_success(self, existing: Optional[dict], fields: Dict[str, Any]) -> dict:
        """Create the Site on first publish or rewrite its serving fields on republish."""
        fields = {
            **fields,
            "published": True,
            "is_active": True,
            "deployment_status": SUCCESS,
            "last_error": None,
            "last_deployed_at": utcnow(),
        }
        if existing is not None:
            return self._set(existing["_id"], fields)

        site_id = create_document(COLLECTION, Site(**fields), database=self.database)
        site = self.collection.find_one({"_id": to_object_id(site_id)})
        logger.info("Created site %s for portfolio %s", site_id, fields["portfolio_id"])
        return site

    def record_failure(self, site: Optional[dict], error: str) -> Optional[dict]:
        if site is None:
            return None
        return self._set(site["_id"], {"deployment_status": FAILED, "last_error": error})

    def update_remote_state(self, site: dict, ready_state: str, error: Optional[str] = None) -> dict:
        fields: Dict[str, Any] = {"ready_state": ready_state}
        if error is not None:
            fields["deployment_status"] = FAILED
            fields["last_error"] = error
        return self._set(site["_id"], fields) or site

    def update_config(self, site: dict, changes: Dict[str, Any]) -> dict:
        fields = {k: v for k, v in changes.items() if k in CONFIG_FIELDS}
        if not fields:
            return site
        return self._set(site["_id"], fields) or site

    def deactivate(self, site: dict) -> dict:
        return self._set(site["_id"], {"is_active": False, "published": False}) or site

    def record_view(self, subdomain: str, referrer: Optional[str] = None, unique_visitor: bool = False) -> Optional[dict]:
        now = utcnow()
        inc = {"view_count": 1}
        if unique_visitor:
            inc["unique_visitors"] = 1
        site = self.collection.find_one_and_update(
            {"subdomain": subdomain, "is_active": True},
            {"$inc": inc, "$set": {"last_viewed_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if site is None or not referrer:
            return site

        source = referrer[:MAX_REFERRER_LENGTH]
        bumped = self.collection.update_one(
            {"_id": site["_id"], "referrers.source": source},
            {"$inc": {"referrers.$.count": 1}, "$set": {"referrers.$.last_seen": now}},
        )
        if bumped.matched_count == 0:
            self.collection.update_one(
                {"_id": site["_id"], "referrers.source": {"$ne": source}},
                {"$push": {"referrers": {"source": source, "count": 1, "last_seen": now}}},
            )
        return self.get(site["_id"])
