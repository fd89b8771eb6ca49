"""Explanation generator.

Turns scores and reason codes into localized, human-readable summaries,
reasons, warnings and recommendations. Templates live in YAML files, one per
locale, under data/locales/. Every ReasonCode must have a reason template in
every loaded locale; this is checked when the generator is constructed.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .config import ExplanationConfig, get_config
from .schema import (
    CompatibilityBreakdown,
    CompatibilityScore,
    Explanation,
    MatchBreakdown,
    MatchScore,
    ReasonCode,
    SummaryTier,
    TargetKind,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCALES_DIR = Path(__file__).parent / "data" / "locales"

# Missing-data codes surfaced as warnings
WARNING_CODES = (
    ReasonCode.TRL_NOT_PROVIDED,
    ReasonCode.TRL_DATA_MISSING,
    ReasonCode.SCALE_DATA_LIMITED,
    ReasonCode.DEADLINE_NOT_ANNOUNCED,
)

# Near-miss codes that come with an actionable suggestion
RECOMMENDATION_CODES = (
    ReasonCode.TRL_TOO_LOW_CLOSE,
    ReasonCode.TRL_TOO_HIGH_CLOSE,
    ReasonCode.TRL_TOO_LOW_MODERATE,
    ReasonCode.DEADLINE_URGENT,
    ReasonCode.PARTIAL_RD_EXPERIENCE,
)


class TemplateRegistryError(RuntimeError):
    """Raised when explanation templates are missing or malformed."""
    pass


class LocaleTemplates(BaseModel):
    """Templates for one locale, as stored in YAML."""
    locale: str
    missing_value: str = "-"
    reasons: dict[str, str] = Field(default_factory=dict)
    warnings: dict[str, str] = Field(default_factory=dict)
    recommendations: dict[str, str] = Field(default_factory=dict)
    summaries: dict[str, dict[str, str]] = Field(default_factory=dict)


class _TemplateValues(dict):
    """format_map mapping that renders unknown placeholders as a neutral marker."""

    def __init__(self, values: dict[str, Any], missing: str):
        super().__init__(values)
        self.missing = missing

    def __missing__(self, key: str) -> str:
        return self.missing


def load_locale_templates(path: Path) -> LocaleTemplates:
    """Load one locale file.

    Raises:
        TemplateRegistryError: If the file is not valid template YAML.
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)
    try:
        return LocaleTemplates.model_validate(raw or {})
    except ValidationError as e:
        raise TemplateRegistryError(f"Invalid locale file {path}: {e}") from e


def discover_locales(directory: Path = DEFAULT_LOCALES_DIR) -> dict[str, Path]:
    """Map locale name to template file for every *.yaml in a directory."""
    return {p.stem: p for p in sorted(directory.glob("*.yaml"))}


class ExplanationGenerator:
    """Generates explanations for program matches and partner scores.

    Configuration:
    - Summary tier thresholds and the default locale come from the
      `explanation` section of matcher-config.yaml
    """

    def __init__(
        self,
        locales: Optional[dict[str, Path]] = None,
        default_locale: Optional[str] = None,
        config: Optional[ExplanationConfig] = None,
    ):
        """Load templates and run the completeness self-check.

        Args:
            locales: Locale name -> template file. Defaults to the bundled locales.
            default_locale: Fallback locale (default: from configuration).
            config: Explanation settings (default: the global configuration).

        Raises:
            TemplateRegistryError: If any locale is incomplete.
        """
        cfg = config or get_config().explanation
        self.strongly_recommended_threshold = cfg.strongly_recommended_threshold
        self.recommended_threshold = cfg.recommended_threshold
        self.review_threshold = cfg.review_threshold
        self.default_locale = default_locale or cfg.default_locale

        paths = locales if locales is not None else discover_locales()
        self.templates: dict[str, LocaleTemplates] = {
            name: load_locale_templates(Path(path)) for name, path in paths.items()
        }
        self.validate_templates()

    @property
    def locales(self) -> list[str]:
        return sorted(self.templates)

    def validate_templates(self) -> None:
        """Check that every locale covers every reason code and summary tier.

        Raises:
            TemplateRegistryError: Listing every gap found.
        """
        issues = []
        if self.default_locale not in self.templates:
            issues.append(f"default locale '{self.default_locale}' is not loaded")

        known_codes = {code.value for code in ReasonCode}
        for name, templates in self.templates.items():
            for code in ReasonCode:
                if not (templates.reasons.get(code.value) or "").strip():
                    issues.append(f"{name}: missing reason template for {code.value}")
            for code in WARNING_CODES:
                if not (templates.warnings.get(code.value) or "").strip():
                    issues.append(f"{name}: missing warning template for {code.value}")
            for code in RECOMMENDATION_CODES:
                if not (templates.recommendations.get(code.value) or "").strip():
                    issues.append(f"{name}: missing recommendation template for {code.value}")
            for section in ("reasons", "warnings", "recommendations"):
                for key in getattr(templates, section):
                    if key not in known_codes:
                        issues.append(f"{name}: unknown reason code '{key}' in {section}")
            for kind in TargetKind:
                summaries = templates.summaries.get(kind.value, {})
                for tier in SummaryTier:
                    if not (summaries.get(tier.value) or "").strip():
                        issues.append(f"{name}: missing {kind.value} summary for {tier.value}")

        if issues:
            raise TemplateRegistryError(
                f"Explanation templates incomplete ({len(issues)} issues): " + "; ".join(issues)
            )

    def tier_for(self, score: int) -> SummaryTier:
        """Summary tier for a total score."""
        if score >= self.strongly_recommended_threshold:
            return SummaryTier.STRONGLY_RECOMMENDED
        if score >= self.recommended_threshold:
            return SummaryTier.RECOMMENDED
        if score >= self.review_threshold:
            return SummaryTier.REVIEW_NEEDED
        return SummaryTier.REFERENCE_ONLY

    def resolve_locale(self, locale: Optional[str]) -> str:
        if locale and locale in self.templates:
            return locale
        if locale:
            logger.debug("Unknown locale '%s', falling back to '%s'", locale, self.default_locale)
        return self.default_locale

    def explain(
        self,
        score: int,
        breakdown: Union[MatchBreakdown, CompatibilityBreakdown],
        reason_codes: list[ReasonCode],
        locale: Optional[str] = None,
        *,
        kind: TargetKind,
        target_name: str,
        details: Optional[dict[str, Any]] = None,
        max_reasons: Optional[int] = None,
    ) -> Explanation:
        """Build a localized explanation.

        Args:
            score: Total score (0-100)
            breakdown: Per-dimension points
            reason_codes: Ordered reason codes from the scorer
            locale: Requested locale (unknown locales fall back to the default)
            kind: Whether a program or a partner is being explained
            target_name: Program title or partner name
            details: Placeholder values recorded by the scorer
            max_reasons: Keep at most this many reasons

        Returns:
            Explanation with summary, tier, reasons, warnings and recommendations
        """
        locale = self.resolve_locale(locale)
        templates = self.templates[locale]

        values = _TemplateValues(
            {
                **breakdown.model_dump(),
                **(details or {}),
                "target_name": target_name,
                "score": score,
            },
            templates.missing_value,
        )

        tier = self.tier_for(score)
        summary = templates.summaries[kind.value][tier.value].format_map(values)

        reasons = []
        warnings = []
        recommendations = []
        for code in dict.fromkeys(reason_codes):
            reasons.append(templates.reasons[code.value].format_map(values))
            if code in WARNING_CODES:
                warnings.append(templates.warnings[code.value].format_map(values))
            if code in RECOMMENDATION_CODES:
                recommendations.append(templates.recommendations[code.value].format_map(values))

        if max_reasons is not None:
            reasons = reasons[:max(max_reasons, 0)]

        return Explanation(
            summary=summary,
            tier=tier,
            reasons=reasons,
            warnings=warnings,
            recommendations=recommendations,
            locale=locale,
        )

    def explain_result(
        self,
        result: Union[MatchScore, CompatibilityScore],
        locale: Optional[str] = None,
        max_reasons: Optional[int] = None,
    ) -> Union[MatchScore, CompatibilityScore]:
        """Return a copy of a score with its explanation attached."""
        kind = TargetKind.PROGRAM if isinstance(result, MatchScore) else TargetKind.PARTNER
        explanation = self.explain(
            result.score,
            result.breakdown,
            result.reason_codes,
            locale,
            kind=kind,
            target_name=result.target_name,
            details=result.details,
            max_reasons=max_reasons,
        )
        return result.model_copy(update={"explanation": explanation})
