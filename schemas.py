"""
Database Schemas for the portfolio publishing service

Each Pydantic model corresponds to a MongoDB collection.
The collection name is the lowercase of the class name.

Collections:
- User: account identity (owned by the account service)
- Session: bearer tokens issued by the auth service
- Portfolio: structured portfolio document (owned by the editor CRUD layer;
  this service only writes the publish fields)
- CaseStudy: per-project write-up linked to a portfolio by project_id
- Site: one published site per portfolio, its deployment state and analytics
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

DeploymentStatus = Literal["draft", "building", "success", "failed"]
DeploymentType = Literal["local", "remote"]


class User(BaseModel):
    username: str = Field(..., min_length=3, max_length=30, description="Unique account handle")
    email: str
    display_name: Optional[str] = Field(None, description="Name to show on published sites")


class Session(BaseModel):
    token: str = Field(..., description="Opaque bearer token")
    user_id: str = Field(..., description="Owner user id")


class Portfolio(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    title: str = ""
    description: str = ""
    template_id: Optional[str] = Field(None, description="Template family key")
    sections: Optional[List[Dict[str, Any]]] = Field(None, description="Legacy [{type, content}] layout")
    content: Optional[Dict[str, Any]] = Field(None, description="Nested {hero, about, work, ...} layout")
    is_published: bool = False
    slug: Optional[str] = None
    published_url: Optional[str] = None
    published_at: Optional[datetime] = None


class CaseStudy(BaseModel):
    portfolio_id: str
    user_id: str
    project_id: str = Field(..., description="Project id inside the portfolio's work section")
    content: Dict[str, Any] = Field(default_factory=dict, description="{hero, overview, sections, additionalContext}")


class Referrer(BaseModel):
    source: str
    count: int = 1
    last_seen: datetime


class Site(BaseModel):
    user_id: str
    portfolio_id: str
    subdomain: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
    title: str = ""
    description: str = ""
    template: str = "echelon"
    owner_name: str = ""
    custom_domain: Optional[str] = None
    published: bool = False
    is_active: bool = True
    deployment_type: DeploymentType = "local"
    deployment_status: DeploymentStatus = "draft"
    deployment_id: Optional[str] = None
    deployment_url: Optional[str] = None
    ready_state: Optional[str] = None
    last_error: Optional[str] = None
    last_deployed_at: Optional[datetime] = None
    files: List[str] = Field(default_factory=list)
    view_count: int = 0
    unique_visitors: int = 0
    last_viewed_at: Optional[datetime] = None
    referrers: List[Referrer] = Field(default_factory=list)
