"""Shared test fixtures for cv-site."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from cvsite.audit.logger import AuditLogger
from cvsite.config import Settings
from cvsite.models import AuditEvent, AuditEventType, RiskLevel

WEBHOOK_SECRET = "test-webhook-secret-32-bytes-long!!"
ADMIN_TOKEN = "test-admin-token-32-bytes-long!!!!"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def config_dir() -> Path:
    return Path(__file__).parent.parent / "config"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


# --- Factory functions for test data ---


def make_settings(tmp_path: Path, **kwargs: Any) -> Settings:
    """Factory for Settings pointing all files into tmp_path."""
    defaults: dict[str, Any] = {
        "webhook_secret": WEBHOOK_SECRET,
        "admin_token": ADMIN_TOKEN,
        "cv_db_path": str(tmp_path / "cv.db"),
        "rate_limits_path": str(tmp_path / "missing-rate-limits.json"),
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.WEBHOOK_AUTH_FAILURE,
        "action": "POST /api/webhook/cv",
        "result": "failure",
        "risk_level": RiskLevel.HIGH,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


_SAMPLE_CV: dict[str, Any] = {
    "personalInfo": {
        "name": "Alex Example",
        "title": "Technical Artist",
        "email": "alex@example.com",
        "phone": "+48 123 456 789",
        "location": "Warsaw, Poland",
        "photo": "https://example.com/photo.jpg",
        "summary": "Technical artist bridging art and engineering for real-time games.",
        "links": {
            "portfolio": "https://example.com",
            "linkedin": "https://linkedin.com/in/example",
            "github": "https://github.com/example",
            "youtube": "https://youtube.com/@example",
            "instagram": "https://instagram.com/example",
            "artstation": "https://artstation.com/example",
        },
    },
    "workExperience": [
        {
            "id": "w1",
            "position": "Technical Artist",
            "company": "Studio",
            "startDate": "2020",
            "endDate": "Present",
            "responsibilities": ["Built shader tooling for the art team"],
            "achievements": ["Cut asset import time by half across projects"],
        },
    ],
    "education": [
        {
            "id": "e1",
            "degree": "BSc Computer Graphics",
            "institution": "University",
            "startDate": "2015",
            "endDate": "2019",
        },
    ],
    "skills": [
        {
            "id": "s1",
            "category": "Programming",
            "skills": [{"name": "Python", "level": "Advanced", "years": 5}],
        },
    ],
    "projects": [
        {
            "id": "p1",
            "name": "Shader Library",
            "description": "A collection of reusable stylised shaders.",
            "technologies": ["HLSL", "Unity"],
            "startDate": "2021",
            "achievements": ["Adopted by three production teams"],
        },
    ],
    "courses": [
        {
            "id": "c1",
            "name": "Real-Time Rendering",
            "provider": "Online Academy",
            "completedDate": "2022",
        },
    ],
    "languages": [
        {"id": "l1", "name": "English", "level": "Advanced"},
        {"id": "l2", "name": "Polish", "level": "Native"},
    ],
}


def make_cv(**overrides: Any) -> dict[str, Any]:
    """Factory for a complete, valid CV document in wire form."""
    cv = copy.deepcopy(_SAMPLE_CV)
    cv.update(overrides)
    return cv


def make_skills_section() -> list[dict[str, Any]]:
    return [
        {
            "id": "s2",
            "category": "Graphics",
            "skills": [
                {"name": "Blender", "level": "Expert"},
                {"name": "Houdini", "level": "Intermediate", "years": 2},
            ],
        },
    ]
