"""
Placeholder detection for case studies.

The editor seeds every new case study with demo copy. A case study whose
title, overview and sections are all still placeholders is rendered as a
short "being developed" stub instead of an empty page skeleton.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from viewmodels import CaseStudyViewModel, Conclusion, PortfolioViewModel, Section, Subsection

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "My First Project"
PLACEHOLDER_DESCRIPTION = "Add a description of your project here..."

STUB_TITLE = "PROJECT\nCASE STUDY"
STUB_INTRO = "This project case study is currently being developed. Check back soon for updates."
STUB_CAPTION = "Project Details"
STUB_CONCLUSION = Conclusion(title="THANK YOU", content="Thank you for your interest in this project.")


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _is_real(value: str, sentinel: str) -> bool:
    stripped = value.strip()
    return bool(stripped) and stripped != sentinel


@dataclass(frozen=True)
class ContentChecks:
    has_title: bool
    has_description: bool
    has_sections: bool

    @property
    def is_placeholder(self) -> bool:
        return not (self.has_title or self.has_description or self.has_sections)


def _parts(raw: Dict[str, Any]):
    raw = _dict(raw)
    content = _dict(raw.get("content"))
    hero = _dict(content.get("hero") or raw.get("hero"))
    overview = _dict(content.get("overview") or raw.get("overview"))
    sections = _list(content.get("sections") or raw.get("sections"))
    context = _dict(content.get("additionalContext") or raw.get("additionalContext"))
    return hero, overview, sections, context


def classify(raw: Dict[str, Any]) -> ContentChecks:
    hero, overview, sections, _ = _parts(raw)
    return ContentChecks(
        has_title=_is_real(_text(hero.get("title")), PLACEHOLDER_TITLE),
        has_description=_is_real(_text(overview.get("description")), PLACEHOLDER_DESCRIPTION),
        has_sections=any(_text(_dict(s).get("content")).strip() for s in sections),
    )


def stub_case_study(portfolio: PortfolioViewModel, year: int) -> CaseStudyViewModel:
    return CaseStudyViewModel(
        category=f"PROJECT — {year}",
        title=STUB_TITLE,
        intro=STUB_INTRO,
        heroCaption=STUB_CAPTION,
        authorName=portfolio.about.name,
        conclusion=STUB_CONCLUSION,
        isStub=True,
    )


def _is_prepared(raw: Dict[str, Any]) -> bool:
    sections = _list(raw.get("sections"))
    return bool(_text(raw.get("category")) and _text(raw.get("intro")) and sections
                and all(isinstance(s, dict) and "number" in s for s in sections))


def _without_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _without_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_without_nulls(v) for v in value if v is not None]
    return value


def _prepared(raw: Dict[str, Any]) -> Optional[CaseStudyViewModel]:
    """Validate a case study already stored in render shape, or None if it does not fit."""
    data = _without_nulls(raw)
    for section in data.get("sections", []):
        number = section.get("number")
        if isinstance(number, int) and not isinstance(number, bool):
            section["number"] = f"{number:02d}"
    try:
        return CaseStudyViewModel.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning("Prepared case study did not validate, rebuilding it: %s", exc.errors()[:3])
        return None


def _section(raw: Dict[str, Any], number: int) -> Section:
    heading = _text(raw.get("heading")) or _text(raw.get("title"))
    images = [i for i in _list(raw.get("images")) if isinstance(i, str) and i]
    image = _text(raw.get("image")) or (images[0] if images else "")
    return Section(
        number=f"{number:02d}",
        title=heading,
        subsections=[Subsection(
            title=heading,
            content=_text(raw.get("content")),
            image=image,
            imageCaption=heading,
            imageLarge=raw.get("layout") == "full",
            highlighted=raw.get("type") == "text",
            images=images,
        )],
    )


def build_case_study(raw: Dict[str, Any], portfolio: PortfolioViewModel, year: int) -> CaseStudyViewModel:
    """Turn a stored case study into its view model, or a stub if it is all placeholder."""
    raw = _dict(raw)
    if _is_prepared(raw):
        prepared = _prepared(raw)
        if prepared is not None:
            return prepared

    checks = classify(raw)
    if checks.is_placeholder:
        return stub_case_study(portfolio, year)

    hero, overview, sections, context = _parts(raw)
    title = _text(hero.get("title")) if checks.has_title else ""
    intro = _text(overview.get("description")) if checks.has_description else _text(overview.get("challenge"))
    client = _text(hero.get("client")).strip()
    label = client or _text(hero.get("subtitle")).strip()
    project_year = _text(hero.get("year")).strip()

    kept = [s for s in (_dict(s) for s in sections)
            if _text(s.get("content")).strip() or _text(s.get("image")) or _list(s.get("images"))]

    return CaseStudyViewModel(
        category=" — ".join(part for part in (label, project_year) if part),
        title=title,
        intro=intro,
        heroImage=_text(hero.get("coverImage")),
        heroCaption=" ".join(part for part in (client, project_year) if part),
        authorName=portfolio.about.name,
        sections=[_section(s, index + 1) for index, s in enumerate(kept)],
        conclusion=Conclusion(
            title=_text(context.get("heading")) or _text(overview.get("heading")),
            content=_text(context.get("content")) or _text(overview.get("results")),
        ),
    )
