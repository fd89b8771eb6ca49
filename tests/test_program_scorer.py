"""Tests for the program match scorer."""

from datetime import timedelta

import pytest

from rnd_matcher.program_scorer import ProgramMatchScorer, collaboration_bonus
from rnd_matcher.schema import Organization, Program, ReasonCode


@pytest.fixture
def scorer(taxonomy):
    return ProgramMatchScorer(taxonomy)


def with_changes(model, **changes):
    """Rebuild a frozen profile with some fields changed."""
    return type(model).model_validate({**model.model_dump(), **changes})


class TestScenarios:
    """End-to-end scoring of realistic profiles."""

    def test_ict_company_strong_match(self, scorer, ict_company, ict_program, as_of):
        result = scorer.score(ict_company, ict_program, as_of=as_of)

        assert result.breakdown.industry == 17
        assert result.breakdown.trl == 20
        assert result.breakdown.organization_type == 20
        assert result.breakdown.rd_experience == 12
        assert result.breakdown.deadline == 8
        assert result.score == 77
        assert result.reason_codes == [
            ReasonCode.KEYWORD_MATCH,
            ReasonCode.SECTOR_MATCH,
            ReasonCode.TRL_PERFECT_MATCH,
            ReasonCode.TYPE_MATCH,
            ReasonCode.RD_EXPERIENCE,
            ReasonCode.COLLABORATION_LIMITED,
            ReasonCode.DEADLINE_MODERATE,
        ]
        assert result.details["matched_keywords"] == "ICT, 인공지능"
        assert result.details["days_left"] == 45

    def test_missing_trl(self, scorer, ict_company, ict_program, as_of):
        org = with_changes(ict_company, current_trl=None)
        result = scorer.score(org, ict_program, as_of=as_of)
        assert result.breakdown.trl == 5
        assert ReasonCode.TRL_NOT_PROVIDED in result.reason_codes
        assert result.details["org_trl"] == "-"

    def test_trl_one_below_range(self, scorer, ict_company, ict_program, as_of):
        org = with_changes(ict_company, current_trl=5)
        program = with_changes(ict_program, min_trl=6, max_trl=9)
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.trl == 12
        assert ReasonCode.TRL_TOO_LOW_CLOSE in result.reason_codes

    def test_trl_far_above_range(self, scorer, ict_company, ict_program, as_of):
        org = with_changes(ict_company, current_trl=8)
        program = with_changes(ict_program, min_trl=1, max_trl=4)
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.trl == 0
        assert ReasonCode.TRL_TOO_FAR in result.reason_codes
        assert result.details["trl_distance"] == 4

    def test_is_deterministic(self, scorer, ict_company, ict_program, as_of):
        first = scorer.score(ict_company, ict_program, as_of=as_of)
        second = scorer.score(ict_company, ict_program, as_of=as_of)
        assert first.model_dump() == second.model_dump()


class TestIndustryScoring:
    """Tests for keyword, sector and technology points."""

    def test_high_cross_industry_relevance(self, scorer, as_of):
        org = Organization(id="o", industry_sector="제조")
        program = Program(id="p", title="ICT 과제", category="ICT")
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.industry == 5
        assert ReasonCode.CROSS_INDUSTRY_HIGH_RELEVANCE in result.reason_codes
        assert result.details["relevance_percent"] == 80

    def test_medium_cross_industry_relevance(self, scorer, as_of):
        org = Organization(id="o", industry_sector="바이오")
        program = Program(id="p", title="X", category="MANUFACTURING")
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.industry == 3
        assert ReasonCode.CROSS_INDUSTRY_MEDIUM_RELEVANCE in result.reason_codes

    def test_low_relevance_adds_nothing(self, scorer, as_of):
        org = Organization(id="o", industry_sector="국방")
        program = Program(id="p", title="X", category="ICT")
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.industry == 0
        assert result.details["relevance_percent"] == 20
        assert ReasonCode.CROSS_INDUSTRY_MEDIUM_RELEVANCE not in result.reason_codes

    def test_unknown_sectors_contribute_nothing(self, scorer, as_of):
        org = Organization(id="o", industry_sector="qqq")
        program = Program(id="p", title="zzz")
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.industry == 0
        assert result.details["org_sector"] == ""

    def test_research_institute_technology_bonus(self, scorer, ict_program, as_of):
        org = Organization(
            id="o",
            kind="RESEARCH_INSTITUTE",
            industry_sector="ICT",
            key_technologies=["인공지능", "클라우드", "빅데이터"],
        )
        result = scorer.score(org, ict_program, as_of=as_of)
        # keywords ICT, 인공지능, 빅데이터 (9) + sector (10) + 2 technologies (4)
        assert result.breakdown.industry == 23
        assert ReasonCode.TECHNOLOGY_KEYWORD_MATCH in result.reason_codes
        assert result.details["matched_technologies"] == "인공지능, 빅데이터"

    def test_company_gets_no_technology_bonus(self, scorer, ict_program, as_of):
        org = Organization(id="o", industry_sector="ICT", key_technologies=["빅데이터"])
        result = scorer.score(org, ict_program, as_of=as_of)
        assert ReasonCode.TECHNOLOGY_KEYWORD_MATCH not in result.reason_codes

    def test_industry_is_capped(self, scorer, as_of):
        keywords = ["인공지능", "빅데이터", "클라우드", "블록체인", "양자", "로봇", "드론", "센서"]
        org = Organization(
            id="o", kind="RESEARCH_INSTITUTE", industry_sector="ICT", key_technologies=keywords
        )
        program = Program(id="p", category="ICT", keywords=keywords)
        result = scorer.score(org, program, as_of=as_of)
        assert result.breakdown.industry == 30


class TestEligibilityAndExperience:
    """Tests for organization type and R&D experience points."""

    def test_type_mismatch(self, scorer, ict_company, ict_program, as_of):
        program = with_changes(ict_program, target_types=["RESEARCH_INSTITUTE"])
        result = scorer.score(ict_company, program, as_of=as_of)
        assert result.breakdown.organization_type == 0
        assert ReasonCode.TYPE_MATCH not in result.reason_codes

    def test_no_target_types_means_open(self, scorer, ict_company, ict_program, as_of):
        program = with_changes(ict_program, target_types=[])
        result = scorer.score(ict_company, program, as_of=as_of)
        assert result.breakdown.organization_type == 20

    @pytest.mark.parametrize(
        "has_experience,count,expected_points,expected_reason",
        [
            (False, 5, 0, None),
            (True, 0, 10, None),
            (True, 1, 12, ReasonCode.COLLABORATION_LIMITED),
            (True, 3, 14, ReasonCode.COLLABORATION_MODERATE),
            (True, 4, 15, ReasonCode.COLLABORATION_EXTENSIVE),
        ],
    )
    def test_rd_experience(
        self, scorer, ict_company, ict_program, as_of,
        has_experience, count, expected_points, expected_reason,
    ):
        org = with_changes(ict_company, has_rd_experience=has_experience, collaboration_count=count)
        result = scorer.score(org, ict_program, as_of=as_of)
        assert result.breakdown.rd_experience == expected_points
        assert (ReasonCode.RD_EXPERIENCE in result.reason_codes) == has_experience
        if expected_reason:
            assert expected_reason in result.reason_codes

    def test_collaboration_bonus_table(self):
        assert collaboration_bonus(0) == (0, None)
        assert collaboration_bonus(1) == (2, "LIMITED")
        assert collaboration_bonus(2) == (4, "MODERATE")
        assert collaboration_bonus(3) == (4, "MODERATE")
        assert collaboration_bonus(10) == (5, "EXTENSIVE")


class TestDeadlineScoring:
    """Tests for deadline proximity points."""

    @pytest.mark.parametrize(
        "days_left,expected_points,expected_reason",
        [
            (0, 15, ReasonCode.DEADLINE_URGENT),
            (7, 15, ReasonCode.DEADLINE_URGENT),
            (8, 12, ReasonCode.DEADLINE_SOON),
            (30, 12, ReasonCode.DEADLINE_SOON),
            (31, 8, ReasonCode.DEADLINE_MODERATE),
            (60, 8, ReasonCode.DEADLINE_MODERATE),
            (61, 5, ReasonCode.DEADLINE_FAR),
        ],
    )
    def test_tiers(self, scorer, ict_company, ict_program, as_of, days_left, expected_points, expected_reason):
        program = with_changes(ict_program, deadline=as_of + timedelta(days=days_left))
        result = scorer.score(ict_company, program, as_of=as_of)
        assert result.breakdown.deadline == expected_points
        assert expected_reason in result.reason_codes

    def test_past_deadline(self, scorer, ict_company, ict_program, as_of):
        program = with_changes(ict_program, deadline=as_of - timedelta(days=1))
        result = scorer.score(ict_company, program, as_of=as_of)
        assert result.breakdown.deadline == 0
        assert result.details["days_left"] == -1
        assert not any(code.value.startswith("DEADLINE") for code in result.reason_codes)

    def test_not_announced(self, scorer, ict_company, ict_program, as_of):
        program = with_changes(ict_program, deadline=None)
        result = scorer.score(ict_company, program, as_of=as_of)
        assert result.breakdown.deadline == 8
        assert ReasonCode.DEADLINE_NOT_ANNOUNCED in result.reason_codes
