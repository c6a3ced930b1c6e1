"""
Canonical rendering models.

These are projections built fresh for every render and never stored.
Every field has a typed empty default so templates never see None.
"""
from typing import List

from pydantic import BaseModel, Field


class Hero(BaseModel):
    title: str = ""
    subtitle: str = ""


class About(BaseModel):
    name: str = ""
    bio: str = ""
    image: str = ""


class Project(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    image: str = ""
    meta: str = ""
    tags: List[str] = Field(default_factory=list)
    hasCaseStudy: bool = False


class Work(BaseModel):
    heading: str = ""
    projects: List[Project] = Field(default_factory=list)


class GalleryImage(BaseModel):
    src: str = ""
    caption: str = ""


class Gallery(BaseModel):
    heading: str = ""
    images: List[GalleryImage] = Field(default_factory=list)


class Contact(BaseModel):
    heading: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    links: List[str] = Field(default_factory=list)


class PortfolioViewModel(BaseModel):
    hero: Hero = Field(default_factory=Hero)
    about: About = Field(default_factory=About)
    work: Work = Field(default_factory=Work)
    gallery: Gallery = Field(default_factory=Gallery)
    contact: Contact = Field(default_factory=Contact)

    def project_ids_with_case_study(self) -> List[str]:
        return [p.id for p in self.work.projects if p.hasCaseStudy]


class Subsection(BaseModel):
    title: str = ""
    content: str = ""
    image: str = ""
    imageCaption: str = ""
    imageLarge: bool = False
    highlighted: bool = False
    images: List[str] = Field(default_factory=list)


class Section(BaseModel):
    number: str
    title: str = ""
    subsections: List[Subsection] = Field(default_factory=list)


class Conclusion(BaseModel):
    title: str = ""
    content: str = ""


class CaseStudyViewModel(BaseModel):
    category: str = ""
    title: str = ""
    intro: str = ""
    heroImage: str = ""
    heroCaption: str = ""
    authorName: str = ""
    sections: List[Section] = Field(default_factory=list)
    conclusion: Conclusion = Field(default_factory=Conclusion)
    isStub: bool = False
