"""
Subdomain resolution.

A subdomain is the public address segment of a published site. It is
derived from (in order) an explicit slug, the designer name in the
portfolio's about section, the account display name, and finally the
account id. Uniqueness is only enforced among active sites.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from errors import Conflict, ValidationError
from normalizer import normalize_portfolio

logger = logging.getLogger(__name__)

MIN_LENGTH = 3
MAX_LENGTH = 30
SUBDOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
MAX_SUGGESTIONS = 5

RESERVED_SUBDOMAINS = frozenset([
    "www", "api", "app", "admin", "dashboard", "console",
    "auth", "login", "signup", "register", "logout", "account",
    "user", "users", "profile", "settings", "preferences",
    "mail", "email", "smtp", "imap", "pop", "webmail",
    "support", "help", "contact", "feedback",
    "ftp", "sftp", "ssh", "git", "cdn", "static", "assets",
    "files", "media", "images", "uploads", "downloads",
    "blog", "docs", "documentation", "wiki", "about", "terms",
    "privacy", "legal", "dmca", "tos", "gdpr",
    "shop", "store", "cart", "checkout", "payment", "billing",
    "subscribe", "newsletter", "marketing", "promo", "sale",
    "dev", "development", "test", "testing", "staging", "demo",
    "sandbox", "preview", "beta", "alpha",
    "status", "monitor", "metrics", "analytics", "stats",
    "health", "ping", "uptime",
    "security", "ssl", "tls", "cert", "certificate",
    "social", "community", "forum", "chat", "discuss",
    "portfolio", "portfolios", "site", "sites",
    "subdomain", "subdomains", "host", "hosting",
    "config", "publish", "unpublish", "deployment",
])

CONFLICT_DIFFERENT_USER = "different_user"
CONFLICT_SAME_USER = "different_portfolio_same_user"

_DISALLOWED = re.compile(r"[^a-z0-9 _-]+")
_SEPARATORS = re.compile(r"[\s_-]+")


def clean(value: Any) -> str:
    """Lowercase and collapse a free-form name into hyphenated slug characters.

    Punctuation acts as a word separator, so ``"User.Name!!"`` becomes
    ``"user-name"``.
    """
    if not isinstance(value, str):
        return ""
    text = _DISALLOWED.sub(" ", value.lower())
    return _SEPARATORS.sub("-", text).strip("-")


def validate(subdomain: str) -> str:
    if len(subdomain) < MIN_LENGTH:
        raise ValidationError(f"Subdomain must be at least {MIN_LENGTH} characters long", {"subdomain": subdomain})
    if len(subdomain) > MAX_LENGTH:
        raise ValidationError(f"Subdomain cannot exceed {MAX_LENGTH} characters", {"subdomain": subdomain})
    if not SUBDOMAIN_RE.match(subdomain):
        raise ValidationError(
            "Subdomain can only contain lowercase letters, numbers, and hyphens, "
            "and cannot start or end with a hyphen",
            {"subdomain": subdomain},
        )
    if subdomain in RESERVED_SUBDOMAINS:
        raise ValidationError("This subdomain is reserved for system use", {"subdomain": subdomain})
    return subdomain


def normalize(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Subdomain is required")
    return validate(clean(raw))


def is_valid(subdomain: str) -> bool:
    try:
        validate(subdomain)
    except ValidationError:
        return False
    return True


def _fit(base: str, suffix: str = "") -> str:
    room = MAX_LENGTH - len(suffix)
    return base[:room].strip("-") + suffix


def _candidate(value: Any) -> Optional[str]:
    slug = _fit(clean(value))
    return slug if is_valid(slug) else None


@dataclass
class Availability:
    available: bool
    subdomain: str
    reason: Optional[str] = None
    conflict_type: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


@dataclass
class Resolution:
    subdomain: str
    previous: Optional[str] = None

    @property
    def is_rename(self) -> bool:
        return bool(self.previous) and self.previous != self.subdomain


class SubdomainResolver:
    def __init__(self, sites, clock=None):
        self.sites = sites
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def derive(self, portfolio: Dict[str, Any], user: Dict[str, Any], explicit: Optional[str] = None) -> str:
        if explicit:
            return normalize(explicit)

        designer = normalize_portfolio(portfolio).about.name
        email = user.get("email") or ""
        for source, value in (
            ("designer_name", designer),
            ("display_name", user.get("display_name") or user.get("name")),
            ("username", user.get("username")),
            ("email", email.split("@")[0] if "@" in email else ""),
        ):
            slug = _candidate(value)
            if slug:
                logger.info("Derived subdomain %s from %s", slug, source)
                return slug

        fallback = _fit(f"user-{str(user.get('_id', '')).lower()}")
        logger.warning("Using account id subdomain %s", fallback)
        return validate(fallback)

    def check(self, subdomain: str, user_id: str, portfolio_id: str) -> Availability:
        try:
            subdomain = normalize(subdomain)
        except ValidationError as exc:
            return Availability(False, clean(subdomain) if isinstance(subdomain, str) else "",
                                reason=exc.message, conflict_type="invalid_format")

        owner = self.sites.find_active_by_subdomain(subdomain)
        if owner is None:
            return Availability(True, subdomain)
        if str(owner["user_id"]) != str(user_id):
            return Availability(False, subdomain, reason="This subdomain is already taken by another user",
                                conflict_type=CONFLICT_DIFFERENT_USER)
        if str(owner["portfolio_id"]) != str(portfolio_id):
            return Availability(False, subdomain,
                                reason="This subdomain is already used by another one of your portfolios",
                                conflict_type=CONFLICT_SAME_USER)
        return Availability(True, subdomain, reason="owned_by_same_portfolio")

    def resolve(self, requested: str, user: Dict[str, Any], portfolio_id: str,
                current: Optional[str] = None) -> Resolution:
        """Validate a requested subdomain for publishing, raising on any conflict."""
        subdomain = normalize(requested)
        availability = self.check(subdomain, str(user["_id"]), portfolio_id)
        if not availability.available:
            logger.warning("Subdomain %s unavailable for portfolio %s: %s",
                           subdomain, portfolio_id, availability.conflict_type)
            raise Conflict(
                availability.reason,
                suggestions=self.suggestions(subdomain, user),
                details={"subdomain": subdomain, "conflictType": availability.conflict_type},
            )
        return Resolution(subdomain=subdomain, previous=current)

    def suggestions(self, subdomain: str, user: Optional[Dict[str, Any]] = None) -> List[str]:
        base = clean(subdomain) or "site"
        username = _candidate((user or {}).get("username"))
        year = str(self.clock().year)

        candidates = [
            _fit(base, "-portfolio"),
            _fit(base, f"-{year}"),
        ]
        if username and username != base:
            candidates.append(username)
            candidates.append(_fit(f"{username}-{base}"))
        candidates.extend(_fit(base, suffix) for suffix in ("-site", "-studio", "-design", "-work", "-2", "-3"))

        suggestions: List[str] = []
        for candidate in candidates:
            if candidate in suggestions or candidate == base or not is_valid(candidate):
                continue
            if self.sites.find_active_by_subdomain(candidate) is not None:
                continue
            suggestions.append(candidate)
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
        return suggestions
