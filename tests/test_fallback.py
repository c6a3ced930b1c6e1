import pytest

from fallback import (
    PLACEHOLDER_DESCRIPTION,
    PLACEHOLDER_TITLE,
    STUB_INTRO,
    STUB_TITLE,
    build_case_study,
    classify,
)
from viewmodels import About, PortfolioViewModel

PORTFOLIO = PortfolioViewModel(about=About(name="Alice Martin"))


def doc(hero=None, overview=None, sections=None, **extra):
    content = {"hero": hero or {}, "overview": overview or {}, "sections": sections or []}
    content.update(extra)
    return {"project_id": "p1", "content": content}


@pytest.mark.parametrize("raw", [
    doc(hero={"title": PLACEHOLDER_TITLE}),
    doc(hero={"title": "  " + PLACEHOLDER_TITLE + " "}, overview={"description": PLACEHOLDER_DESCRIPTION}),
    doc(sections=[{"heading": "Only a heading", "content": ""}]),
    {},
    {"content": "not a dict"},
])
def test_placeholder_content_becomes_stub(raw):
    assert classify(raw).is_placeholder

    case_study = build_case_study(raw, PORTFOLIO, 2024)

    assert case_study.isStub
    assert case_study.title == STUB_TITLE
    assert case_study.intro == STUB_INTRO
    assert case_study.category == "PROJECT — 2024"
    assert case_study.authorName == "Alice Martin"
    assert case_study.sections == []


def test_each_check_is_independent():
    assert classify(doc(hero={"title": "Rebrand"})).has_title
    assert classify(doc(overview={"description": "Real words"})).has_description
    assert classify(doc(sections=[{"content": "Body"}])).has_sections
    assert not classify(doc(hero={"title": "Rebrand"})).is_placeholder


def test_real_title_keeps_other_fields_blank():
    case_study = build_case_study(doc(hero={"title": "Rebrand"}, overview={"description": PLACEHOLDER_DESCRIPTION}),
                                  PORTFOLIO, 2024)

    assert not case_study.isStub
    assert case_study.title == "Rebrand"
    assert case_study.intro == ""
    assert case_study.category == ""
    assert case_study.sections == []


def test_sentinel_title_is_not_rendered_when_other_content_is_real():
    case_study = build_case_study(doc(hero={"title": PLACEHOLDER_TITLE}, overview={"description": "Real intro"}),
                                  PORTFOLIO, 2024)

    assert case_study.title == ""
    assert case_study.intro == "Real intro"


def test_only_sections_with_content_are_numbered():
    case_study = build_case_study(doc(
        hero={"title": "Rebrand", "client": "Acme", "year": "2023"},
        sections=[
            {"heading": "Research", "content": "We talked to users."},
            {"heading": "Empty", "content": "   "},
            {"heading": "Visuals", "images": ["a.jpg", "b.jpg"], "layout": "full"},
        ],
        additionalContext={"heading": "Outcome", "content": "It shipped."},
    ), PORTFOLIO, 2024)

    assert [(s.number, s.title) for s in case_study.sections] == [("01", "Research"), ("02", "Visuals")]
    visuals = case_study.sections[1].subsections[0]
    assert visuals.image == "a.jpg"
    assert visuals.images == ["a.jpg", "b.jpg"]
    assert visuals.imageLarge
    assert case_study.category == "Acme — 2023"
    assert case_study.conclusion.title == "Outcome"
    assert case_study.authorName == "Alice Martin"


def test_prepared_view_model_passes_through():
    raw = {"category": "BRANDING — 2022", "intro": "Prepared", "title": "Prepared case",
           "sections": [{"number": "01", "title": "One"}]}

    case_study = build_case_study(raw, PORTFOLIO, 2024)

    assert case_study.category == "BRANDING — 2022"
    assert case_study.sections[0].number == "01"
    assert not case_study.isStub


def test_prepared_shape_with_numeric_numbers_and_nulls():
    raw = {"category": "BRAND — 2023", "intro": "Intro", "title": "T", "heroImage": None,
           "sections": [{"number": 1, "title": "Research", "subsections": []},
                        {"number": 2, "title": None,
                         "subsections": [{"title": "Sketches", "content": None, "images": [None, "a.png"]}]}],
           "conclusion": None}

    case_study = build_case_study(raw, PORTFOLIO, 2024)

    assert [(s.number, s.title) for s in case_study.sections] == [("01", "Research"), ("02", "")]
    assert case_study.sections[1].subsections[0].images == ["a.png"]
    assert case_study.heroImage == ""
    assert case_study.conclusion.title == ""


def test_prepared_shape_that_does_not_validate_is_rebuilt():
    raw = {"category": "BRAND — 2023", "intro": "Intro", "title": "T",
           "sections": [{"number": None, "title": {"text": "Research"}}]}

    case_study = build_case_study(raw, PORTFOLIO, 2024)

    assert case_study.isStub
    assert case_study.intro == STUB_INTRO
