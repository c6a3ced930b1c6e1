"""
Content normalizer.

Portfolios have been stored in three shapes over time:

- ``sections``: a list of ``{"type": ..., "content": ...}`` blocks
- ``content``: a nested ``{"hero": ..., "about": ..., "work": ...}`` object
- bare metadata: only ``title`` / ``description`` (and sometimes a flat
  ``projects`` or ``works`` list) on the record itself

Each shape has one adapter that feeds a ``PortfolioViewModelBuilder``;
nothing downstream of ``normalize_portfolio`` knows which shape it came from.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from viewmodels import (
    About,
    Contact,
    Gallery,
    GalleryImage,
    Hero,
    PortfolioViewModel,
    Project,
    Work,
)

SHAPE_SECTIONS = "sections"
SHAPE_CONTENT = "content"
SHAPE_METADATA = "metadata"

GALLERY_ROWS = ("firstRow", "secondRow", "thirdRow")


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    if isinstance(value, bool):
        return ""
    return str(value)


def _first(source: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = _text(source.get(key))
        if value.strip():
            return value
    return ""


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def detect_shape(raw: Dict[str, Any]) -> str:
    sections = raw.get("sections")
    if isinstance(sections, list) and sections:
        return SHAPE_SECTIONS
    if isinstance(raw.get("content"), dict):
        return SHAPE_CONTENT
    return SHAPE_METADATA


class PortfolioViewModelBuilder:
    """Accumulates portfolio parts from any source shape.

    Setters only overwrite with non-empty data, so adapters can be layered:
    structured content first, record metadata as backfill.
    """

    def __init__(self, linked_project_ids: Optional[Iterable[str]] = None):
        self._linked = None if linked_project_ids is None else {str(i) for i in linked_project_ids}
        self._hero = Hero()
        self._about = About()
        self._work = Work()
        self._gallery = Gallery()
        self._contact = Contact()

    def hero(self, data: Dict[str, Any]) -> "PortfolioViewModelBuilder":
        data = _dict(data)
        self._hero = Hero(
            title=_first(data, "title", "heading") or self._hero.title,
            subtitle=_first(data, "subtitle", "tagline", "description") or self._hero.subtitle,
        )
        return self

    def about(self, data: Dict[str, Any]) -> "PortfolioViewModelBuilder":
        data = _dict(data)
        self._about = About(
            name=_first(data, "name", "fullName") or self._about.name,
            bio=_first(data, "bio", "description", "text") or self._about.bio,
            image=_first(data, "image", "profileImage", "photo") or self._about.image,
        )
        return self

    def work(self, heading: Any = None, projects: Any = None) -> "PortfolioViewModelBuilder":
        items = _list(projects)
        self._work = Work(
            heading=_text(heading) or self._work.heading,
            projects=[self._project(item, index) for index, item in enumerate(items)] if items else self._work.projects,
        )
        return self

    def gallery(self, data: Any) -> "PortfolioViewModelBuilder":
        if isinstance(data, list):
            data = {"images": data}
        data = _dict(data)
        raw_images = _list(data.get("images"))
        for row in GALLERY_ROWS:
            raw_images.extend(_list(data.get(row)))
        images = [img for img in (self._gallery_image(item) for item in raw_images) if img.src]
        self._gallery = Gallery(
            heading=_first(data, "heading", "title") or self._gallery.heading,
            images=images or self._gallery.images,
        )
        return self

    def contact(self, data: Dict[str, Any], social: Any = None) -> "PortfolioViewModelBuilder":
        data = _dict(data)
        links = [_text(v) for v in _list(data.get("links")) if _text(v)]
        links.extend(_text(v) for v in _dict(data.get("social")).values() if _text(v))
        links.extend(_text(v) for v in _dict(social).values() if _text(v))
        self._contact = Contact(
            heading=_first(data, "heading", "title") or self._contact.heading,
            email=_first(data, "email") or self._contact.email,
            phone=_first(data, "phone") or self._contact.phone,
            location=_first(data, "location", "address") or self._contact.location,
            links=links or self._contact.links,
        )
        return self

    def build(self) -> PortfolioViewModel:
        return PortfolioViewModel(
            hero=self._hero,
            about=self._about,
            work=self._work,
            gallery=self._gallery,
            contact=self._contact,
        )

    def _project(self, item: Any, index: int) -> Project:
        item = _dict(item)
        raw_id = item.get("id")
        if raw_id is None or _text(raw_id).strip() == "":
            raw_id = item.get("_id")
        # position-derived ids match what the editor stored as case-study projectId
        project_id = _text(raw_id).strip() or str(index)
        if self._linked is None:
            has_case_study = bool(item.get("hasCaseStudy"))
        else:
            has_case_study = project_id in self._linked
        return Project(
            id=project_id,
            title=_first(item, "title", "name"),
            description=_first(item, "description", "summary"),
            image=_first(item, "image", "thumbnail", "coverImage"),
            meta=_first(item, "meta", "category", "type"),
            tags=[_text(t) for t in _list(item.get("tags")) if _text(t)],
            hasCaseStudy=has_case_study,
        )

    @staticmethod
    def _gallery_image(item: Any) -> GalleryImage:
        if isinstance(item, str):
            return GalleryImage(src=item)
        item = _dict(item)
        return GalleryImage(
            src=_first(item, "src", "url", "image"),
            caption=_first(item, "caption", "title", "alt"),
        )


def _adapt_sections(raw: Dict[str, Any], builder: PortfolioViewModelBuilder) -> None:
    blocks: Dict[str, Any] = {}
    for block in _list(raw.get("sections")):
        block = _dict(block)
        kind = _text(block.get("type")).strip().lower()
        if kind and kind not in blocks:
            blocks[kind] = block.get("content")

    work = _dict(blocks.get("work"))
    projects = blocks.get("projects")
    if isinstance(projects, dict):
        projects = projects.get("projects") or projects.get("items")
    if not _list(projects):
        projects = work.get("projects")

    builder.hero(blocks.get("hero")).about(blocks.get("about"))
    builder.work(work.get("heading"), projects)
    builder.gallery(blocks.get("gallery")).contact(blocks.get("contact"), blocks.get("social"))


def _adapt_content(raw: Dict[str, Any], builder: PortfolioViewModelBuilder) -> None:
    content = _dict(raw.get("content"))
    work = _dict(content.get("work"))
    projects = work.get("projects")
    if not _list(projects):
        projects = content.get("projects")

    builder.hero(content.get("hero")).about(content.get("about"))
    builder.work(work.get("heading"), projects)
    builder.gallery(content.get("gallery")).contact(content.get("contact"), content.get("social"))


def _adapt_metadata(raw: Dict[str, Any], builder: PortfolioViewModelBuilder) -> None:
    builder.hero({"title": raw.get("title"), "subtitle": _first(raw, "subtitle", "tagline", "description")})
    builder.about({
        "name": _first(raw, "name", "userName"),
        "bio": _first(raw, "bio", "description"),
        "image": _first(raw, "profileImage", "image"),
    })
    projects = raw.get("projects")
    if not _list(projects):
        projects = raw.get("works")
    builder.work(None, projects)
    builder.gallery(raw.get("gallery")).contact(_dict(raw.get("contact")) or {"email": raw.get("email")}, raw.get("social"))


ADAPTERS: Dict[str, Callable[[Dict[str, Any], PortfolioViewModelBuilder], None]] = {
    SHAPE_SECTIONS: _adapt_sections,
    SHAPE_CONTENT: _adapt_content,
    SHAPE_METADATA: _adapt_metadata,
}


def normalize_portfolio(raw: Dict[str, Any], linked_project_ids: Optional[Iterable[str]] = None) -> PortfolioViewModel:
    """Project a stored portfolio record of any historical shape onto the view model.

    ``linked_project_ids`` are the project ids that have a case study; when
    given, they decide ``hasCaseStudy`` instead of whatever flag is stored.
    """
    raw = _dict(raw)
    builder = PortfolioViewModelBuilder(linked_project_ids)
    shape = detect_shape(raw)
    ADAPTERS[shape](raw, builder)
    if shape != SHAPE_METADATA:
        # record-level title/description only fill gaps left by structured content
        view = builder.build()
        if not view.hero.title or not view.hero.subtitle:
            builder.hero({"title": view.hero.title or raw.get("title"),
                          "subtitle": view.hero.subtitle or raw.get("description")})
    return builder.build()
