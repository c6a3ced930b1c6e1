"""
Publish orchestration.

Runs normalize -> fallback -> render -> assemble -> resolve -> store ->
record for the two publish targets (local subdomain directory, remote
hosting API) and handles unpublish, status and analytics. Publishes of
the same portfolio, and claims on the same subdomain, are serialized with
in-process locks.
"""
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from assembler import INDEX, SAFE_PROJECT_ID, assemble, case_study_filename, prepare_content
from config import Settings, get_settings
from errors import Conflict, NotFound, PublishError, PublishInProgress, UpstreamError, ValidationError
from hosting import Deployment, HostingClient, poll_deployment
from logs import PublishLogger, publish_logger
from portfolios import PortfolioRepository
from sites import SiteRepository
from storage import LocalSiteStore
from subdomains import SubdomainResolver

logger = logging.getLogger(__name__)

DOMAIN_RE = re.compile(r"^(?=.{4,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


class _NamedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class PublishLocks:
    """Named locks, created on first use and dropped once nobody holds or waits for them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, _NamedLock] = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str, timeout: float):
        with self._guard:
            entry = self._locks.setdefault(key, _NamedLock())
            entry.users += 1
        try:
            if not entry.lock.acquire(timeout=timeout):
                raise PublishInProgress("A publish for this portfolio is already in progress", details={"lock": key})
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]


_locks = PublishLocks()


@dataclass
class PublishResult:
    site: dict
    url: str
    files: List[str]
    correlation_id: str
    renamed_from: Optional[str] = None
    local_path: Optional[str] = None
    deployment: Optional[Deployment] = None


def site_url(site: dict, settings: Settings) -> str:
    if site.get("deployment_type") == "remote" and site.get("deployment_url"):
        return site["deployment_url"]
    return settings.public_url(site["subdomain"])


class Publisher:
    def __init__(self, database: Database, settings: Optional[Settings] = None,
                 store: Optional[LocalSiteStore] = None, hosting: Optional[HostingClient] = None,
                 locks: Optional[PublishLocks] = None, clock=None):
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.sites = SiteRepository(database)
        self.portfolios = PortfolioRepository(database)
        self.resolver = SubdomainResolver(self.sites, self.clock)
        self.store = store or LocalSiteStore(self.settings.sites_root)
        self.hosting = hosting or HostingClient(
            self.settings.hosting_token,
            base_url=self.settings.hosting_api_url,
            team_id=self.settings.hosting_team_id,
            timeout=self.settings.hosting_timeout,
        )
        self.locks = locks or _locks

    def _logger(self, user: dict, portfolio_id: str) -> PublishLogger:
        return publish_logger(__name__, user_id=str(user["_id"]), portfolio_id=str(portfolio_id))

    @contextmanager
    def _serialized(self, user: dict, portfolio_id: str, subdomain: Optional[str] = None):
        timeout = self.settings.publish_lock_timeout
        with self.locks.hold(f"portfolio:{user['_id']}:{portfolio_id}", timeout):
            if subdomain is None:
                yield
                return
            with self.locks.hold(f"subdomain:{subdomain}", timeout):
                yield

    def _site_fields(self, user: dict, portfolio: dict, subdomain: str, template_id: str,
                     files: Dict[str, str]) -> Dict[str, Any]:
        return {
            "user_id": str(user["_id"]),
            "portfolio_id": str(portfolio["_id"]),
            "subdomain": subdomain,
            "title": portfolio.get("title") or "",
            "description": portfolio.get("description") or "",
            "template": template_id,
            "owner_name": user.get("display_name") or user.get("username") or "",
            "files": list(files),
        }

    def _save_site(self, existing: Optional[dict], fields: Dict[str, Any]) -> dict:
        try:
            return self.sites.record_success(existing, fields)
        except DuplicateKeyError as exc:
            raise Conflict("This subdomain was just claimed by another site",
                           details={"subdomain": fields["subdomain"]}) from exc

    def _fail(self, existing: Optional[dict], exc: Exception, log: PublishLogger) -> None:
        message = exc.message if isinstance(exc, PublishError) else str(exc)
        if isinstance(exc, PublishError):
            log.error("Publish failed: %s", message)
        else:
            log.exception("Publish failed unexpectedly")
        self.sites.record_failure(existing, message)

    def _discard_unreferenced(self, subdomain: str, log: PublishLogger) -> None:
        """Best-effort removal of a directory no active Site points at."""
        if self.sites.find_active_by_subdomain(subdomain) is None:
            self.store.remove(subdomain, log=log)

    def publish_local(self, user: dict, portfolio_id: str, custom_subdomain: Optional[str]) -> PublishResult:
        log = self._logger(user, portfolio_id)
        portfolio = self.portfolios.get_owned(portfolio_id, user["_id"])

        if not custom_subdomain or not str(custom_subdomain).strip():
            suggested = self.resolver.derive(portfolio, user)
            raise ValidationError(
                "Custom subdomain is required. Please choose a unique subdomain for your portfolio.",
                {"required": "customSubdomain", "currentSubdomain": portfolio.get("slug"),
                 "suggestions": [suggested] + self.resolver.suggestions(suggested, user)[:4]},
            )

        requested = self.resolver.derive(portfolio, user, explicit=custom_subdomain)
        log.info("Local publish requested for subdomain %s", requested)

        with self._serialized(user, portfolio_id, requested):
            existing = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
            resolution = self.resolver.resolve(
                requested, user, str(portfolio_id), current=existing["subdomain"] if existing else None
            )
            if existing:
                self.sites.mark_building(existing)

            site, saved = None, False
            try:
                content = prepare_content(portfolio, self.portfolios.list_case_studies(portfolio_id),
                                          self.clock().year, log=log)
                files = assemble(content, log=log)
                path = self.store.save(resolution.subdomain, files, log=log)
                saved = True

                url = self.settings.public_url(resolution.subdomain)
                fields = self._site_fields(user, portfolio, resolution.subdomain, content.template_id, files)
                fields.update({"deployment_type": "local", "deployment_id": None, "deployment_url": None,
                               "ready_state": None})
                site = self._save_site(existing, fields)
                self.portfolios.mark_published(portfolio_id, resolution.subdomain, url)
            except Exception as exc:
                self._fail(site or existing, exc, log)
                if saved and site is None and (existing is None or resolution.is_rename):
                    self._discard_unreferenced(resolution.subdomain, log)
                raise

            if resolution.is_rename:
                log.info("Subdomain changed from %s to %s", resolution.previous, resolution.subdomain)
                self.store.remove(resolution.previous, log=log)

        log.info("Published %d files at %s", len(files), url)
        return PublishResult(site=site, url=url, files=list(files), correlation_id=log.correlation_id,
                             renamed_from=resolution.previous if resolution.is_rename else None,
                             local_path=str(path))

    def publish_remote(self, user: dict, portfolio_id: str) -> PublishResult:
        log = self._logger(user, portfolio_id)
        portfolio = self.portfolios.get_owned(portfolio_id, user["_id"])

        current = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
        explicit = current["subdomain"] if current else portfolio.get("slug")
        requested = self.resolver.derive(portfolio, user, explicit=explicit)
        log.info("Remote publish requested for project %s", requested)

        with self._serialized(user, portfolio_id, requested):
            existing = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
            resolution = self.resolver.resolve(
                requested, user, str(portfolio_id), current=existing["subdomain"] if existing else None
            )
            if existing:
                self.sites.mark_building(existing)

            site = None
            try:
                content = prepare_content(portfolio, self.portfolios.list_case_studies(portfolio_id),
                                          self.clock().year, log=log)
                files = assemble(content, for_remote=True, subdomain=resolution.subdomain,
                                 title=portfolio.get("title") or "", log=log)
                deployment = self.hosting.create_deployment(resolution.subdomain, files, self.settings.hosting_target,
                                                           log=log)
                log.info("Deployment %s accepted (%s)", deployment.uid, deployment.ready_state)

                fields = self._site_fields(user, portfolio, resolution.subdomain, content.template_id, files)
                fields.update({"deployment_type": "remote", "deployment_id": deployment.uid,
                               "deployment_url": deployment.https_url, "ready_state": deployment.ready_state})
                site = self._save_site(existing, fields)
                self.portfolios.mark_published(portfolio_id, resolution.subdomain, deployment.https_url)
            except Exception as exc:
                self._fail(site or existing, exc, log)
                raise

            # local copies are stale once the provider serves the site
            if existing and existing.get("deployment_type") != "remote":
                self.store.remove(existing["subdomain"], log=log)

        return PublishResult(site=site, url=deployment.https_url, files=list(files),
                             correlation_id=log.correlation_id, deployment=deployment)

    def unpublish(self, user: dict, portfolio_id: str) -> dict:
        log = self._logger(user, portfolio_id)
        self.portfolios.get_owned(portfolio_id, user["_id"])

        with self._serialized(user, portfolio_id):
            site = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
            if site is None:
                raise NotFound.resource("Site", portfolio_id)
            self.sites.deactivate(site)
            self.store.remove(site["subdomain"], log=log)
            self.portfolios.mark_unpublished(portfolio_id)

        log.info("Unpublished %s", site["subdomain"])
        return {"portfolioId": str(portfolio_id), "subdomain": site["subdomain"]}

    def status(self, user: dict, portfolio_id: str) -> dict:
        self.portfolios.get_owned(portfolio_id, user["_id"])
        site = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
        if site is None:
            return {"published": False, "subdomain": None, "status": "not_published", "url": None,
                    "lastDeployedAt": None}
        return {
            "published": bool(site.get("published")),
            "subdomain": site["subdomain"],
            "status": site.get("deployment_status"),
            "url": site_url(site, self.settings),
            "lastDeployedAt": site.get("last_deployed_at"),
            "deploymentType": site.get("deployment_type"),
            "readyState": site.get("ready_state"),
            "lastError": site.get("last_error"),
        }

    def _remote_site(self, user: dict, portfolio_id: str) -> dict:
        self.portfolios.get_owned(portfolio_id, user["_id"])
        site = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
        if site is None:
            raise NotFound.resource("Site", portfolio_id)
        if site.get("deployment_type") != "remote" or not site.get("deployment_id"):
            raise ValidationError("This site is not deployed to the hosting provider")
        return site

    def _apply_deployment(self, site: dict, deployment: Deployment) -> dict:
        if deployment.failed:
            error = deployment.error or f"Deployment {deployment.ready_state.lower()}"
            return self.sites.update_remote_state(site, deployment.ready_state, error)
        return self.sites.update_remote_state(site, deployment.ready_state)

    def refresh_deployment(self, user: dict, portfolio_id: str) -> dict:
        """Run a single status check against the provider and record the result."""
        site = self._remote_site(user, portfolio_id)
        self._apply_deployment(site, self.hosting.get_deployment(site["deployment_id"]))
        return self.status(user, portfolio_id)

    def poll_deployment(self, site_id, cancel: Optional[threading.Event] = None) -> Optional[dict]:
        """Bounded background polling until the remote build finishes."""
        site = self.sites.get(site_id)
        if site is None or not site.get("deployment_id"):
            return site
        try:
            deployment = poll_deployment(
                self.hosting, site["deployment_id"],
                max_attempts=self.settings.poll_max_attempts,
                base_delay=self.settings.poll_base_delay,
                max_delay=self.settings.poll_max_delay,
                cancel=cancel,
            )
        except UpstreamError as exc:
            logger.error("Could not poll deployment %s: %s", site["deployment_id"], exc.message)
            return site

        current = self.sites.get(site_id)
        if current is None or current.get("deployment_id") != deployment.uid:
            # superseded by a newer publish while polling
            return current
        return self._apply_deployment(current, deployment)

    def check_subdomain(self, user: dict, subdomain: str, portfolio_id: Optional[str] = None) -> dict:
        availability = self.resolver.check(subdomain, str(user["_id"]), str(portfolio_id or ""))
        result = {
            "subdomain": availability.subdomain,
            "available": availability.available,
            "reason": availability.reason,
            "conflictType": availability.conflict_type,
            "suggestions": [],
        }
        if not availability.available:
            result["suggestions"] = self.resolver.suggestions(availability.subdomain or subdomain, user)
        return result

    def record_view(self, subdomain: str, referrer: Optional[str] = None, unique_visitor: bool = False) -> dict:
        site = self.sites.record_view(subdomain, referrer, unique_visitor)
        if site is None:
            raise NotFound.resource("Site", subdomain)
        return {"viewCount": site.get("view_count", 0), "uniqueVisitors": site.get("unique_visitors", 0)}

    def get_config(self, user: dict, portfolio_id: str) -> dict:
        self.portfolios.get_owned(portfolio_id, user["_id"])
        site = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
        if site is None:
            raise NotFound.resource("Site", portfolio_id)
        return site_config(site, self.settings)

    def update_config(self, user: dict, portfolio_id: str, changes: Dict[str, Any]) -> dict:
        self.portfolios.get_owned(portfolio_id, user["_id"])
        domain = changes.get("custom_domain")
        if domain:
            domain = domain.strip().lower()
            if not DOMAIN_RE.match(domain):
                raise ValidationError("Custom domain is not a valid host name", {"customDomain": domain})
            changes = {**changes, "custom_domain": domain}

        with self._serialized(user, portfolio_id):
            site = self.sites.find_active_for_portfolio(user["_id"], portfolio_id)
            if site is None:
                raise NotFound.resource("Site", portfolio_id)
            site = self.sites.update_config(site, changes)
        return site_config(site, self.settings)

    def served_site(self, subdomain: str) -> dict:
        site = self.sites.find_active_by_subdomain(subdomain)
        if site is None or not site.get("published"):
            raise NotFound.resource("Site", subdomain)
        return site

    def read_file(self, subdomain: str, filename: str = INDEX) -> str:
        site = self.served_site(subdomain)
        if site.get("deployment_type") == "remote":
            raise NotFound("This site is served by the hosting provider",
                           {"subdomain": subdomain, "url": site.get("deployment_url")})
        content = self.store.read(subdomain, filename) if filename in site.get("files", []) else None
        if content is None:
            raise NotFound(f"{filename} not found for this site", {"subdomain": subdomain, "file": filename})
        return content

    def read_case_study(self, subdomain: str, project_id: str) -> str:
        if not SAFE_PROJECT_ID.match(project_id or ""):
            raise NotFound.resource("Case study", project_id)
        return self.read_file(subdomain, case_study_filename(project_id))


def site_config(site: dict, settings: Settings) -> dict:
    return {
        "subdomain": site["subdomain"],
        "title": site.get("title", ""),
        "description": site.get("description", ""),
        "customDomain": site.get("custom_domain"),
        "template": site.get("template"),
        "published": bool(site.get("published")),
        "url": site_url(site, settings),
        "deployment": {
            "type": site.get("deployment_type"),
            "status": site.get("deployment_status"),
            "lastDeployedAt": site.get("last_deployed_at"),
            "files": site.get("files", []),
        },
        "analytics": {
            "viewCount": site.get("view_count", 0),
            "uniqueVisitors": site.get("unique_visitors", 0),
            "referrers": [
                {"source": r.get("source"), "count": r.get("count", 0), "lastSeen": r.get("last_seen")}
                for r in site.get("referrers", [])
            ],
        },
    }
