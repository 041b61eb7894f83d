"""Section-level validation for CV updates."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter, ValidationError

from cvsite.cv.models import (
    CVData,
    Course,
    Education,
    Language,
    PersonalInfo,
    Project,
    Section,
    SkillCategory,
    WorkExperience,
)


class SectionValidationError(Exception):
    """Raised when section data does not match its schema."""

    def __init__(self, section: str, detail: str) -> None:
        self.section = section
        self.detail = detail
        super().__init__(f"Validation failed for section {section}: {detail}")


_ADAPTERS: dict[Section, TypeAdapter[Any]] = {
    Section.PERSONAL_INFO: TypeAdapter(PersonalInfo),
    Section.WORK_EXPERIENCE: TypeAdapter(list[WorkExperience]),
    Section.EDUCATION: TypeAdapter(list[Education]),
    Section.SKILLS: TypeAdapter(list[SkillCategory]),
    Section.PROJECTS: TypeAdapter(list[Project]),
    Section.COURSES: TypeAdapter(list[Course]),
    Section.LANGUAGES: TypeAdapter(list[Language]),
}


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def validate_section(section: Section | str, data: Any) -> Any:
    """Validate ``data`` for ``section`` and return its normalised wire form."""
    try:
        key = Section(section)
    except ValueError:
        raise SectionValidationError(str(section), "unknown section") from None

    adapter = _ADAPTERS[key]
    try:
        parsed = adapter.validate_python(data)
    except ValidationError as exc:
        raise SectionValidationError(key.value, _summarize(exc)) from exc
    return adapter.dump_python(parsed, mode="json", by_alias=True, exclude_none=True)


def validate_cv(data: Any) -> dict[str, Any]:
    """Validate a complete CV document and return its wire form."""
    try:
        cv = CVData.model_validate(data)
    except ValidationError as exc:
        raise SectionValidationError("cv", _summarize(exc)) from exc
    return cv.model_dump(mode="json", by_alias=True, exclude_none=True)
