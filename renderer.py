"""
Template renderer.

Each template family is a Jinja2 template rendering the same
``PortfolioViewModel``. Rendering is pure: the output depends only on the
view model, the family and the options. An unknown family, or one that
fails to render, falls back to the default family.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import jinja2

from errors import RenderError
from viewmodels import CaseStudyViewModel, PortfolioViewModel

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

DEFAULT_TEMPLATE_ID = "echelon"
TEMPLATE_ALIASES = {"echolon": "echelon"}


@dataclass(frozen=True)
class RenderOptions:
    for_pdf: bool = False


def build_environment(templates_dir: Path = TEMPLATES_DIR) -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(templates_dir)),
        autoescape=jinja2.select_autoescape(["html", "xml"]),
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


_env = build_environment()


class TemplateFamily:
    def __init__(self, template_id: str, name: str, template_name: str, env: jinja2.Environment = _env):
        self.template_id = template_id
        self.name = name
        self.template_name = template_name
        self.env = env

    def render(self, view: PortfolioViewModel, options: RenderOptions) -> str:
        template = self.env.get_template(self.template_name)
        return template.render(view=view, for_pdf=options.for_pdf, template_id=self.template_id)

    def __repr__(self):
        return f"<TemplateFamily {self.template_id}>"


FAMILIES: Dict[str, TemplateFamily] = {
    "echelon": TemplateFamily("echelon", "Echelon", "echelon.html"),
    "serene": TemplateFamily("serene", "Serene", "serene.html"),
    "chic": TemplateFamily("chic", "Chic", "chic.html"),
    "boldfolio": TemplateFamily("boldfolio", "BoldFolio", "boldfolio.html"),
}


def canonical_template_id(template_id: Optional[str]) -> Optional[str]:
    if not template_id:
        return None
    key = str(template_id).strip().lower()
    return TEMPLATE_ALIASES.get(key, key)


def get_family(template_id: Optional[str]) -> Optional[TemplateFamily]:
    return FAMILIES.get(canonical_template_id(template_id) or "")


def render(view: PortfolioViewModel, template_id: Optional[str], options: Optional[RenderOptions] = None,
           log: Union[logging.Logger, logging.LoggerAdapter] = logger) -> str:
    options = options or RenderOptions()
    default = FAMILIES[DEFAULT_TEMPLATE_ID]
    family = get_family(template_id)
    if family is None:
        log.warning("Unknown template %r, rendering with %s", template_id, default.template_id)
        family = default

    try:
        return family.render(view, options)
    except Exception as exc:
        if family is default:
            raise RenderError(f"Default template failed to render: {exc}") from exc
        log.exception("Template %s failed to render, falling back to %s", family.template_id, default.template_id)

    try:
        return default.render(view, options)
    except Exception as exc:
        raise RenderError(f"Default template failed to render: {exc}") from exc


def render_case_study(project_id: str, case_study: CaseStudyViewModel, portfolio: PortfolioViewModel,
                      for_pdf: bool = False, env: jinja2.Environment = _env) -> str:
    """Render the case-study page shared by every template family."""
    try:
        template = env.get_template("case_study.html")
        return template.render(
            project_id=project_id,
            case_study=case_study,
            portfolio=portfolio,
            plain_title=case_study.title.replace("\n", " "),
            for_pdf=for_pdf,
            template_id="case-study",
        )
    except jinja2.TemplateError as exc:
        raise RenderError(f"Case study {project_id} failed to render: {exc}") from exc
