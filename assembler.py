"""
Deployment file assembly.

Turns a stored portfolio and its case studies into the complete file map
of a static site: ``index.html``, one ``case-study-<projectId>.html`` per
linked project and, for remote hosting, a zero-build manifest.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from errors import ValidationError
from fallback import build_case_study
from normalizer import normalize_portfolio
from renderer import DEFAULT_TEMPLATE_ID, RenderOptions, canonical_template_id, render, render_case_study
from viewmodels import CaseStudyViewModel, PortfolioViewModel

logger = logging.getLogger(__name__)

INDEX = "index.html"
CASE_STUDY_PREFIX = "case-study-"
HOSTING_CONFIG = "vercel.json"
PACKAGE_MANIFEST = "package.json"
MIN_INDEX_LENGTH = 100

SAFE_PROJECT_ID = re.compile(r"^[A-Za-z0-9_-]+$")

# demo copy shipped with the editor's starter templates
PLACEHOLDER_COPY = (
    "JOHN DESIGNER",
    "BRAND IDENTITY SYSTEM",
    "DESIGNING WITH PRECISION",
    "Case studies in clarity and form",
    "I am a designer focused on minimalism",
    "Comprehensive brand identity and guidelines for a tech startup",
    "In this article I will share my logo design process",
)

_DEV_PATTERNS = [
    re.compile(r'<script[^>]*src="[^"]*/@vite/client"[^>]*></script>', re.I),
    re.compile(r'<script[^>]*src="[^"]*/@react-refresh"[^>]*></script>', re.I),
    re.compile(r"<script[^>]*>[\s\S]*?import\s*{\s*injectIntoGlobalHook\s*}\s*from[\s\S]*?</script>", re.I),
    re.compile(r"<script[^>]*>[\s\S]*?window\.__vite[\s\S]*?</script>", re.I),
    re.compile(r"<script[^>]*>[\s\S]*?__REACT_DEVTOOLS[\s\S]*?</script>", re.I),
    re.compile(r'<link[^>]*rel="modulepreload"[^>]*href="[^"]*/@vite[^"]*"[^>]*>', re.I),
    re.compile(r"http://localhost:\d+", re.I),
    re.compile(r"//# sourceMappingURL=.*", re.I),
    re.compile(r"/\*# sourceMappingURL=.*\*/", re.I),
]

Log = Union[logging.Logger, logging.LoggerAdapter]


def case_study_filename(project_id: str) -> str:
    return f"{CASE_STUDY_PREFIX}{project_id}.html"


def clean_development_scripts(html: str) -> str:
    for pattern in _DEV_PATTERNS:
        html = pattern.sub("", html)
    return html


def find_placeholder_copy(html: str) -> List[str]:
    return [marker for marker in PLACEHOLDER_COPY if marker in html]


def hosting_manifest(subdomain: str, title: str = "") -> Dict[str, str]:
    config = {"version": 2, "builds": [{"src": "**/*", "use": "@vercel/static"}]}
    package = {
        "name": f"{subdomain}-site",
        "version": "1.0.0",
        "description": f"Portfolio site for {title or subdomain}",
        "scripts": {"build": "echo 'Static site ready'"},
    }
    return {
        HOSTING_CONFIG: json.dumps(config, indent=2, sort_keys=True),
        PACKAGE_MANIFEST: json.dumps(package, indent=2, sort_keys=True),
    }


def validate_file_set(files: Dict[str, str]) -> None:
    index = files.get(INDEX, "")
    issues = []
    if len(index) < MIN_INDEX_LENGTH:
        issues.append("index.html is missing or too short")
    elif "<title>" not in index:
        issues.append("index.html has no <title>")
    for name in files:
        if "/" in name or "\\" in name or name.startswith("."):
            issues.append(f"invalid file name {name!r}")
    if issues:
        raise ValidationError("Deployment validation failed", {"issues": issues})


@dataclass
class PublishContent:
    portfolio: PortfolioViewModel
    template_id: str
    case_studies: Dict[str, CaseStudyViewModel] = field(default_factory=dict)


def prepare_content(portfolio: Dict[str, Any], case_studies: Iterable[Dict[str, Any]], year: int,
                    log: Log = logger) -> PublishContent:
    """Normalize a portfolio and build the view model of every linked case study."""
    by_project: Dict[str, Dict[str, Any]] = {}
    for doc in case_studies:
        project_id = str(doc.get("project_id", "")).strip()
        if project_id and project_id not in by_project:
            by_project[project_id] = doc

    view = normalize_portfolio(portfolio, by_project.keys())

    projects = []
    for project in view.work.projects:
        if project.hasCaseStudy and not SAFE_PROJECT_ID.match(project.id):
            log.warning("Project id %r cannot be used in a file name, not linking its case study", project.id)
            project = project.model_copy(update={"hasCaseStudy": False})
        projects.append(project)
    view = view.model_copy(update={"work": view.work.model_copy(update={"projects": projects})})

    linked = view.project_ids_with_case_study()
    orphans = sorted(set(by_project) - {p.id for p in view.work.projects})
    if orphans:
        log.info("Skipping case studies with no matching project: %s", ", ".join(orphans))

    template_id = canonical_template_id(
        portfolio.get("template_id") or portfolio.get("templateId") or portfolio.get("template")
    ) or DEFAULT_TEMPLATE_ID
    return PublishContent(
        portfolio=view,
        template_id=template_id,
        case_studies={pid: build_case_study(by_project[pid], view, year) for pid in linked},
    )


def assemble(content: PublishContent, for_remote: bool = False, subdomain: Optional[str] = None,
             title: str = "", for_pdf: bool = False, log: Log = logger) -> Dict[str, str]:
    files: Dict[str, str] = {}

    index = render(content.portfolio, content.template_id, RenderOptions(for_pdf=for_pdf), log=log)
    files[INDEX] = clean_development_scripts(index)
    leftovers = find_placeholder_copy(files[INDEX])
    if leftovers:
        log.warning("Generated index still contains starter copy: %s", ", ".join(leftovers))

    for project_id, case_study in content.case_studies.items():
        files[case_study_filename(project_id)] = render_case_study(project_id, case_study, content.portfolio, for_pdf)

    if for_remote:
        files.update(hosting_manifest(subdomain or "portfolio", title))

    validate_file_set(files)
    log.info("Assembled %d files (%d case studies, template %s)",
             len(files), len(content.case_studies), content.template_id)
    return files
