"""
Read/write contract with the portfolio, case-study and user collections.

Those collections belong to the editor's CRUD layer; publishing only reads
them and writes back the four publish fields of a Portfolio.
"""
from typing import List, Optional

from pymongo.database import Database

from database import to_object_id, utcnow
from errors import Forbidden, NotFound


class PortfolioRepository:
    def __init__(self, database: Database):
        self.portfolios = database["portfolio"]
        self.case_studies = database["casestudy"]
        self.users = database["user"]

    def get(self, portfolio_id) -> dict:
        oid = to_object_id(portfolio_id)
        portfolio = self.portfolios.find_one({"_id": oid}) if oid else None
        if portfolio is None:
            raise NotFound.resource("Portfolio", portfolio_id)
        return portfolio

    def get_owned(self, portfolio_id, user_id) -> dict:
        portfolio = self.get(portfolio_id)
        if str(portfolio.get("user_id")) != str(user_id):
            raise Forbidden("You do not have access to this portfolio", {"portfolioId": str(portfolio_id)})
        return portfolio

    def get_user(self, user_id) -> Optional[dict]:
        oid = to_object_id(user_id)
        return self.users.find_one({"_id": oid}) if oid else None

    def list_case_studies(self, portfolio_id) -> List[dict]:
        return list(self.case_studies.find({"portfolio_id": str(portfolio_id)}).sort("project_id", 1))

    def mark_published(self, portfolio_id, slug: Optional[str], url: str) -> None:
        fields = {"is_published": True, "published_url": url, "published_at": utcnow()}
        if slug:
            fields["slug"] = slug
        self.portfolios.update_one({"_id": to_object_id(portfolio_id)}, {"$set": fields})

    def mark_unpublished(self, portfolio_id) -> None:
        self.portfolios.update_one(
            {"_id": to_object_id(portfolio_id)},
            {"$set": {"is_published": False, "slug": None, "published_url": None, "published_at": None}},
        )
