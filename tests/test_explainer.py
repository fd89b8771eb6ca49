"""Tests for the explanation generator and its template registry."""

import pytest
import yaml

from rnd_matcher.config import ExplanationConfig
from rnd_matcher.explainer import (
    DEFAULT_LOCALES_DIR,
    ExplanationGenerator,
    TemplateRegistryError,
    discover_locales,
)
from rnd_matcher.schema import (
    CompatibilityBreakdown,
    MatchBreakdown,
    MatchScore,
    ReasonCode,
    SummaryTier,
    TargetKind,
)


@pytest.fixture(scope="module")
def generator():
    return ExplanationGenerator()


def write_locale(tmp_path, name: str, mutate) -> dict:
    """Copy the bundled English templates with a modification applied."""
    with open(DEFAULT_LOCALES_DIR / "en.yaml", "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    mutate(data)
    path = tmp_path / f"{name}.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return {name: path}


class TestTemplateRegistry:
    """Tests for template completeness checks."""

    def test_bundled_locales(self, generator):
        assert generator.locales == ["en", "ko"]
        assert set(discover_locales()) == {"en", "ko"}

    @pytest.mark.parametrize("locale", ["ko", "en"])
    @pytest.mark.parametrize("code", list(ReasonCode), ids=lambda c: c.value)
    def test_every_code_renders(self, generator, locale, code):
        explanation = generator.explain(
            50, MatchBreakdown(), [code], locale,
            kind=TargetKind.PROGRAM, target_name="사업",
        )
        assert len(explanation.reasons) == 1
        assert explanation.reasons[0].strip()
        assert "{" not in explanation.reasons[0]

    def test_missing_reason_template(self, tmp_path):
        locales = write_locale(tmp_path, "en", lambda d: d["reasons"].pop("SECTOR_MATCH"))
        with pytest.raises(TemplateRegistryError, match="SECTOR_MATCH"):
            ExplanationGenerator(locales=locales, default_locale="en")

    def test_missing_summary(self, tmp_path):
        locales = write_locale(tmp_path, "en", lambda d: d["summaries"]["PARTNER"].pop("RECOMMENDED"))
        with pytest.raises(TemplateRegistryError, match="PARTNER summary for RECOMMENDED"):
            ExplanationGenerator(locales=locales, default_locale="en")

    def test_unknown_code(self, tmp_path):
        locales = write_locale(tmp_path, "en", lambda d: d["reasons"].update({"NOT_A_CODE": "x"}))
        with pytest.raises(TemplateRegistryError, match="NOT_A_CODE"):
            ExplanationGenerator(locales=locales, default_locale="en")

    def test_default_locale_must_be_loaded(self, tmp_path):
        locales = write_locale(tmp_path, "en", lambda d: None)
        with pytest.raises(TemplateRegistryError, match="default locale 'ko'"):
            ExplanationGenerator(locales=locales)


class TestExplain:
    """Tests for rendering explanations."""

    def test_summary_and_tier(self, generator):
        explanation = generator.explain(
            85, MatchBreakdown(), [], "en",
            kind=TargetKind.PROGRAM, target_name="AI Grant",
        )
        assert explanation.tier == SummaryTier.STRONGLY_RECOMMENDED
        assert explanation.summary == "'AI Grant' is strongly recommended for you (85 points)."
        assert explanation.locale == "en"

    @pytest.mark.parametrize(
        "score,tier",
        [
            (100, SummaryTier.STRONGLY_RECOMMENDED),
            (80, SummaryTier.STRONGLY_RECOMMENDED),
            (79, SummaryTier.RECOMMENDED),
            (60, SummaryTier.RECOMMENDED),
            (59, SummaryTier.REVIEW_NEEDED),
            (40, SummaryTier.REVIEW_NEEDED),
            (39, SummaryTier.REFERENCE_ONLY),
            (0, SummaryTier.REFERENCE_ONLY),
        ],
    )
    def test_tier_thresholds(self, generator, score, tier):
        assert generator.tier_for(score) == tier

    def test_configured_thresholds(self):
        config = ExplanationConfig(
            strongly_recommended_threshold=90, recommended_threshold=70, review_threshold=50
        )
        generator = ExplanationGenerator(config=config)
        assert generator.tier_for(85) == SummaryTier.RECOMMENDED
        assert generator.tier_for(45) == SummaryTier.REFERENCE_ONLY

    def test_placeholders_filled_from_details(self, generator):
        explanation = generator.explain(
            50, MatchBreakdown(), [ReasonCode.SECTOR_MATCH], "ko",
            kind=TargetKind.PROGRAM, target_name="사업",
            details={"org_sector": "ICT/정보통신"},
        )
        assert explanation.reasons == ["귀 기관의 산업 분야(ICT/정보통신)가 사업 분야와 일치합니다."]

    def test_missing_placeholder_renders_marker(self, generator):
        explanation = generator.explain(
            50, MatchBreakdown(), [ReasonCode.SECTOR_MATCH], "ko",
            kind=TargetKind.PROGRAM, target_name="사업",
        )
        assert explanation.reasons == ["귀 기관의 산업 분야(-)가 사업 분야와 일치합니다."]

    def test_unknown_locale_falls_back(self, generator):
        explanation = generator.explain(
            50, CompatibilityBreakdown(), [ReasonCode.SAME_SCALE], "fr",
            kind=TargetKind.PARTNER, target_name="파트너",
        )
        assert explanation.locale == "ko"

    def test_warnings_and_recommendations(self, generator):
        explanation = generator.explain(
            50, MatchBreakdown(),
            [ReasonCode.TRL_NOT_PROVIDED, ReasonCode.DEADLINE_URGENT, ReasonCode.TYPE_MATCH],
            "en",
            kind=TargetKind.PROGRAM, target_name="Grant",
            details={"days_left": 3, "deadline": "2026-03-05"},
        )
        assert explanation.warnings == ["Provide your TRL for more accurate recommendations."]
        assert explanation.recommendations == [
            "The deadline is close. Prepare your application documents now."
        ]
        assert "Only 3 day(s) left until the deadline (2026-03-05)." in explanation.reasons

    def test_duplicates_and_max_reasons(self, generator):
        codes = [ReasonCode.TYPE_MATCH, ReasonCode.TYPE_MATCH, ReasonCode.RD_EXPERIENCE, ReasonCode.SECTOR_MATCH]
        explanation = generator.explain(
            50, MatchBreakdown(), codes, "en",
            kind=TargetKind.PROGRAM, target_name="Grant", max_reasons=2,
        )
        assert explanation.reasons == [
            "Your organization type is eligible for this program.",
            "You have prior experience running R&D projects.",
        ]

    def test_max_reasons_zero(self, generator):
        explanation = generator.explain(
            50, MatchBreakdown(), [ReasonCode.TYPE_MATCH], "en",
            kind=TargetKind.PROGRAM, target_name="Grant", max_reasons=0,
        )
        assert explanation.reasons == []

    def test_explain_result(self, generator):
        breakdown = MatchBreakdown(trl=20, organization_type=20)
        score = MatchScore(
            program_id="p1",
            program_title="Grant",
            score=40,
            breakdown=breakdown,
            reason_codes=[ReasonCode.TRL_NO_REQUIREMENT, ReasonCode.TYPE_MATCH],
        )
        explained = generator.explain_result(score, locale="en")
        assert score.explanation is None
        assert explained.explanation.tier == SummaryTier.REVIEW_NEEDED
        assert explained.explanation.reasons[0] == "The program has no TRL requirement."
        assert explained.program_id == "p1"
