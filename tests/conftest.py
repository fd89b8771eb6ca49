"""Shared fixtures for the R&D matcher tests."""

from datetime import date, timedelta

import pytest

from rnd_matcher.config import reset_config
from rnd_matcher.schema import Organization, Program
from rnd_matcher.taxonomy import load_taxonomy, reset_taxonomy


AS_OF = date(2026, 3, 2)


@pytest.fixture(autouse=True)
def clean_globals():
    """Every test starts from default configuration and taxonomy."""
    reset_config()
    reset_taxonomy()
    yield
    reset_config()
    reset_taxonomy()


@pytest.fixture(scope="session")
def taxonomy():
    """The bundled taxonomy, loaded once."""
    return load_taxonomy()


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def ict_company():
    """An ICT company at TRL 6 with one prior collaboration."""
    return Organization(
        id="org-ict",
        name="테스트정보통신",
        kind="COMPANY",
        industry_sector="ICT",
        current_trl=6,
        has_rd_experience=True,
        collaboration_count=1,
        key_technologies=["인공지능", "클라우드"],
    )


@pytest.fixture
def ict_program():
    """An ICT program for companies, TRL 4-8, closing 45 days after AS_OF."""
    return Program(
        id="prog-ict",
        title="2026년 ICT 혁신기술 개발사업",
        category="ICT",
        keywords=["인공지능", "빅데이터"],
        target_types=["COMPANY"],
        min_trl=4,
        max_trl=8,
        deadline=AS_OF + timedelta(days=45),
    )


def make_program(program_id: str, **overrides) -> dict:
    """Program record as a plain dict, the way announcement feeds deliver it."""
    record = {
        "id": program_id,
        "title": f"Program {program_id}",
        "category": "ICT",
        "target_types": ["COMPANY"],
        "min_trl": 4,
        "max_trl": 8,
        "deadline": (AS_OF + timedelta(days=45)).isoformat(),
    }
    record.update(overrides)
    return record


def make_organization(org_id: str, **overrides) -> dict:
    record = {
        "id": org_id,
        "name": f"Organization {org_id}",
        "kind": "COMPANY",
        "industry_sector": "ICT",
        "current_trl": 5,
        "has_rd_experience": True,
        "collaboration_count": 0,
    }
    record.update(overrides)
    return record
