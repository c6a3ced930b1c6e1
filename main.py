import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from bson.objectid import ObjectId
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from pymongo.database import Database

from assembler import case_study_filename
from config import get_settings
from database import db, ensure_indexes, get_documents, to_object_id
from errors import PublishError
from logs import configure_logging
from publisher import Publisher, site_url

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    if db is not None:
        ensure_indexes(db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, publishing routes will return 503")
    yield


app = FastAPI(title="Portfolio Publishing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers

def to_public(doc: dict):
    if not doc:
        return doc
    doc = {**doc}
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return jsonable_encoder(doc, custom_encoder={ObjectId: str})


def ok(message: str, data=None):
    return {"success": True, "message": message, "data": jsonable_encoder(data, custom_encoder={ObjectId: str})}


def failure(status_code: int, message: str, error: Optional[dict] = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if error:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def site_summary(site: dict, settings) -> dict:
    summary = to_public(site)
    summary["url"] = site_url(site, settings)
    return summary


# Dependencies

def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def get_publisher(database: Database = Depends(get_db)) -> Publisher:
    return Publisher(database)


def current_user(authorization: Optional[str] = Header(None), database: Database = Depends(get_db)) -> dict:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    sessions = get_documents("session", {"token": token.strip()}, limit=1, database=database)
    if not sessions:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = database["user"].find_one({"_id": to_object_id(sessions[0]["user_id"])})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# Error envelope

@app.exception_handler(PublishError)
async def publish_error_handler(request: Request, exc: PublishError):
    return failure(exc.status_code, exc.message, exc.to_error())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return failure(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")} for e in exc.errors()]
    return failure(400, "Invalid request", {"code": "VALIDATION_ERROR", "fields": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return failure(500, "Internal server error", {"code": "SERVER_ERROR"})


# Health
@app.get("/")
def read_root():
    return {"message": "Portfolio publishing API running"}

@app.get("/test")
def test_database():
    status = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "❌ Not Set" if not os.getenv("DATABASE_URL") else "✅ Set",
        "database_name": "❌ Not Set" if not os.getenv("DATABASE_NAME") else "✅ Set",
        "collections": []
    }
    if db is None:
        return status
    try:
        cols = db.list_collection_names()
        status["database"] = "✅ Connected"
        status["collections"] = cols
    except Exception as e:
        status["database"] = f"❌ Error: {str(e)[:80]}"
    return status

# Requests
class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    portfolio_id: str = Field(..., alias="portfolioId")


class SubPublishRequest(PublishRequest):
    custom_subdomain: Optional[str] = Field(None, alias="customSubdomain")


class ConfigUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    custom_domain: Optional[str] = Field(None, alias="customDomain")


class ViewEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subdomain: str
    referrer: Optional[str] = None
    unique_visitor: bool = Field(False, alias="uniqueVisitor")


# Publishing
@app.post("/sites/publish")
def publish(payload: PublishRequest, background: BackgroundTasks, user: dict = Depends(current_user),
            publisher: Publisher = Depends(get_publisher)):
    result = publisher.publish_remote(user, payload.portfolio_id)
    if publisher.settings.poll_after_publish:
        background.add_task(publisher.poll_deployment, result.site["_id"])
    return ok("Portfolio deployment started", {
        "site": site_summary(result.site, publisher.settings),
        "url": result.url,
        "deploymentId": result.deployment.uid,
        "readyState": result.deployment.ready_state,
        "files": result.files,
        "correlationId": result.correlation_id,
    })

@app.post("/sites/sub-publish")
def sub_publish(payload: SubPublishRequest, user: dict = Depends(current_user),
                publisher: Publisher = Depends(get_publisher)):
    result = publisher.publish_local(user, payload.portfolio_id, payload.custom_subdomain)
    return ok("Portfolio published successfully", {
        "site": site_summary(result.site, publisher.settings),
        "subdomain": result.site["subdomain"],
        "url": result.url,
        "files": result.files,
        "renamedFrom": result.renamed_from,
        "correlationId": result.correlation_id,
    })

@app.delete("/sites/unpublish/{portfolio_id}")
def unpublish(portfolio_id: str, user: dict = Depends(current_user), publisher: Publisher = Depends(get_publisher)):
    return ok("Portfolio unpublished successfully", publisher.unpublish(user, portfolio_id))

@app.get("/sites/status")
def publish_status(portfolio_id: str = Query(..., alias="portfolioId"), user: dict = Depends(current_user),
                   publisher: Publisher = Depends(get_publisher)):
    status = publisher.status(user, portfolio_id)
    message = "Site is published" if status["published"] else "Site is not published"
    return ok(message, status)

@app.post("/sites/deployment/refresh")
def refresh_deployment(payload: PublishRequest, user: dict = Depends(current_user),
                       publisher: Publisher = Depends(get_publisher)):
    return ok("Deployment status refreshed", publisher.refresh_deployment(user, payload.portfolio_id))

@app.get("/sites/subdomain/check")
def check_subdomain(subdomain: str, portfolio_id: Optional[str] = Query(None, alias="portfolioId"),
                    user: dict = Depends(current_user), publisher: Publisher = Depends(get_publisher)):
    result = publisher.check_subdomain(user, subdomain, portfolio_id)
    return ok("Subdomain is available" if result["available"] else "Subdomain is not available", result)

# Site config
@app.get("/sites/config")
def get_site_config(portfolio_id: str = Query(..., alias="portfolioId"), user: dict = Depends(current_user),
                    publisher: Publisher = Depends(get_publisher)):
    return ok("Site configuration", publisher.get_config(user, portfolio_id))

@app.put("/sites/config")
def update_site_config(payload: ConfigUpdate, portfolio_id: str = Query(..., alias="portfolioId"),
                       user: dict = Depends(current_user), publisher: Publisher = Depends(get_publisher)):
    changes = {k: v for k, v in payload.model_dump().items() if v is not None}
    return ok("Site configuration updated", publisher.update_config(user, portfolio_id, changes))

# Analytics (public)
@app.post("/sites/analytics/view")
def record_view(payload: ViewEvent, request: Request, publisher: Publisher = Depends(get_publisher)):
    referrer = payload.referrer or request.headers.get("referer")
    return ok("View recorded", publisher.record_view(payload.subdomain, referrer, payload.unique_visitor))

# Serving (public)
@app.get("/sites/{subdomain}/case-study/{project_id}")
def serve_case_study(subdomain: str, project_id: str, publisher: Publisher = Depends(get_publisher)):
    publisher.read_case_study(subdomain, project_id)
    return RedirectResponse(f"/sites/{subdomain}/{case_study_filename(project_id)}")

@app.get("/sites/{subdomain}")
def serve_site(subdomain: str, publisher: Publisher = Depends(get_publisher)):
    site = publisher.served_site(subdomain)
    if site.get("deployment_type") == "remote" and site.get("deployment_url"):
        return RedirectResponse(site["deployment_url"])
    # pages link to each other relatively, so they are served below a trailing slash
    return RedirectResponse(f"/sites/{subdomain}/")

@app.get("/sites/{subdomain}/", response_class=HTMLResponse)
def serve_index(subdomain: str, publisher: Publisher = Depends(get_publisher)):
    return HTMLResponse(publisher.read_file(subdomain))

@app.get("/sites/{subdomain}/{filename}", response_class=HTMLResponse)
def serve_page(subdomain: str, filename: str, publisher: Publisher = Depends(get_publisher)):
    return HTMLResponse(publisher.read_file(subdomain, filename))
