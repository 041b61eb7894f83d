"""Pydantic models for CV sections.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_URL = r"^https?://[^\s/$.?#][^\s]*$"
_EMAIL = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

Statement = Annotated[str, Field(min_length=10)]
Technology = Annotated[str, Field(min_length=2)]


class _CVModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Section(str, Enum):
    PERSONAL_INFO = "personalInfo"
    WORK_EXPERIENCE = "workExperience"
    EDUCATION = "education"
    SKILLS = "skills"
    PROJECTS = "projects"
    COURSES = "courses"
    LANGUAGES = "languages"


class SkillLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"


class LanguageLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    NATIVE = "Native"


# --- Sections ---


class SocialLinks(_CVModel):
    portfolio: str = Field(pattern=_URL)
    linkedin: str = Field(pattern=_URL)
    github: str = Field(pattern=_URL)
    youtube: str = Field(pattern=_URL)
    instagram: str = Field(pattern=_URL)
    artstation: str = Field(pattern=_URL)


class PersonalInfo(_CVModel):
    name: str = Field(min_length=2)
    title: str = Field(min_length=5)
    email: str = Field(pattern=_EMAIL)
    phone: str = Field(min_length=10)
    location: str = Field(min_length=3)
    photo: str = Field(pattern=_URL)
    summary: str = Field(min_length=50)
    links: SocialLinks


class WorkExperience(_CVModel):
    id: str = Field(min_length=1)
    position: str = Field(min_length=3)
    company: str = Field(min_length=2)
    start_date: str = Field(min_length=4)
    end_date: str = Field(min_length=4)
    responsibilities: list[Statement] = Field(default_factory=list)
    achievements: list[Statement] = Field(default_factory=list)


class Education(_CVModel):
    id: str = Field(min_length=1)
    degree: str = Field(min_length=5)
    institution: str = Field(min_length=3)
    start_date: str = Field(min_length=4)
    end_date: str = Field(min_length=4)
    description: str | None = None


class Skill(_CVModel):
    name: str = Field(min_length=2)
    level: SkillLevel
    years: float | None = Field(default=None, ge=0)


class SkillCategory(_CVModel):
    id: str = Field(min_length=1)
    category: str = Field(min_length=3)
    skills: list[Skill] = Field(min_length=1)


class Project(_CVModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=3)
    description: str = Field(min_length=20)
    technologies: list[Technology] = Field(default_factory=list)
    github: str | None = Field(default=None, pattern=_URL)
    url: str | None = Field(default=None, pattern=_URL)
    start_date: str = Field(min_length=4)
    end_date: str | None = Field(default=None, min_length=4)
    achievements: list[Statement] = Field(default_factory=list)


class Course(_CVModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=5)
    provider: str = Field(min_length=3)
    completed_date: str = Field(min_length=4)
    certificate_url: str | None = Field(default=None, pattern=_URL)
    description: str | None = None


class Language(_CVModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=2)
    level: LanguageLevel


class CVData(_CVModel):
    personal_info: PersonalInfo
    work_experience: list[WorkExperience] = Field(min_length=1)
    education: list[Education] = Field(min_length=1)
    skills: list[SkillCategory] = Field(min_length=1)
    projects: list[Project] = Field(min_length=1)
    courses: list[Course] = Field(min_length=1)
    languages: list[Language] = Field(min_length=1)


class CVUpdateRequest(BaseModel):
    """Body of a single-section update (admin PUT or signed webhook)."""

    section: Section
    data: Any
