"""Partner compatibility scorer.

Scores a candidate partner for an organization on a 0-100 scale:

    TRL fit             0-40
    industry/technology 0-30
    scale               0-15
    experience          0-15

Scoring is directional. score(a, b) answers "how good a partner is b for a"
and is not required to equal score(b, a).
"""

from typing import Any, Optional

from .program_scorer import collaboration_bonus
from .schema import (
    CompatibilityBreakdown,
    CompatibilityScore,
    Organization,
    ReasonCode,
    RevenueRange,
)
from .taxonomy import Taxonomy, keywords_overlap, normalize
from .trl import score_trl


class PartnerCompatibilityScorer:
    """Scores partner candidates against an organization's needs.

    TRL fit rewards complementary maturity when either side has declared a
    preference; without one it falls back to plain TRL proximity.
    """

    # TRL fit
    PERFECT_COMPLEMENT_POINTS = 40
    EARLY_COMPLEMENT_POINTS = 35
    PREFERENCE_MATCH_POINTS = 30
    TRL_FALLBACK_BASE_POINTS = 15
    TRL_DATA_MISSING_POINTS = 10
    TARGET_TRL_TOLERANCE = 1

    # Industry / technology
    SAME_INDUSTRY_POINTS = 15
    STRONG_RELEVANCE_THRESHOLD = 0.7
    STRONG_RELEVANCE_POINTS = 10
    PARTIAL_RELEVANCE_THRESHOLD = 0.5
    PARTIAL_RELEVANCE_POINTS = 5
    DESIRED_FIELD_POINTS = 5
    DESIRED_FIELD_MAX_POINTS = 10
    TECHNOLOGY_POINTS = 5
    TECHNOLOGY_MAX_POINTS = 10
    INDUSTRY_MAX_POINTS = 30

    # Scale: bracket distance -> (points, reason)
    SCALE_POINTS = {
        0: (15, ReasonCode.SAME_SCALE),
        1: (10, ReasonCode.ADJACENT_SCALE),
        2: (5, ReasonCode.SCALE_GAP_MODERATE),
        3: (2, ReasonCode.SCALE_GAP_LARGE),
    }
    SCALE_DATA_LIMITED_POINTS = 5

    # Experience
    MUTUAL_EXPERIENCE_POINTS = 10
    PARTIAL_EXPERIENCE_POINTS = 5

    def __init__(self, taxonomy: Taxonomy):
        self.taxonomy = taxonomy

    def score(self, org: Organization, partner: Organization) -> CompatibilityScore:
        """Score one partner candidate from the organization's perspective.

        Args:
            org: The organization looking for partners
            partner: The candidate partner

        Returns:
            CompatibilityScore with breakdown, ordered reason codes and template details
        """
        reasons: list[ReasonCode] = []
        details: dict[str, Any] = {}

        breakdown = CompatibilityBreakdown(
            trl_fit=self._score_trl_fit(org, partner, reasons, details),
            industry=self._score_industry(org, partner, reasons, details),
            scale=self._score_scale(org, partner, reasons, details),
            experience=self._score_experience(org, partner, reasons, details),
        )

        return CompatibilityScore(
            partner_id=partner.id,
            partner_name=partner.name,
            score=breakdown.total(),
            breakdown=breakdown,
            reason_codes=reasons,
            details=details,
        )

    # -------------------------------------------------------------------------
    # TRL fit
    # -------------------------------------------------------------------------

    def _score_trl_fit(
        self,
        org: Organization,
        partner: Organization,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        org_trl = org.current_trl
        partner_trl = partner.current_trl
        details["org_trl"] = org_trl if org_trl is not None else "-"
        details["partner_trl"] = partner_trl if partner_trl is not None else "-"

        if self._preference_matches(org, partner):
            if org_trl is not None and partner_trl is not None:
                if partner_trl > org_trl:
                    reasons.append(ReasonCode.PERFECT_TRL_COMPLEMENT_COMMERCIALIZATION)
                    return self.PERFECT_COMPLEMENT_POINTS
                if partner_trl < org_trl:
                    reasons.append(ReasonCode.STRONG_TRL_COMPLEMENT_EARLY)
                    return self.EARLY_COMPLEMENT_POINTS
            reasons.append(ReasonCode.TRL_PREFERENCE_MATCH)
            return self.PREFERENCE_MATCH_POINTS

        if org_trl is None or partner_trl is None:
            reasons.append(ReasonCode.TRL_DATA_MISSING)
            return self.TRL_DATA_MISSING_POINTS

        # Partner's TRL as a single-point range, rescaled from 0-20 to 15-25 (half-up)
        result = score_trl(org_trl, partner_trl, partner_trl)
        points = self.TRL_FALLBACK_BASE_POINTS + (result.points + 1) // 2

        gap = abs(org_trl - partner_trl)
        details["trl_gap"] = gap
        if gap <= 1:
            reasons.append(ReasonCode.TRL_SIMILAR)
        elif gap <= 3:
            reasons.append(ReasonCode.TRL_GAP_MODERATE)
        else:
            reasons.append(ReasonCode.TRL_GAP_WIDE)
        return points

    def _preference_matches(self, org: Organization, partner: Organization) -> bool:
        """Check the declared TRL preferences in priority order."""
        wanted = org.target_partner_trl
        if wanted is not None and not wanted.is_open and wanted.contains(partner.current_trl):
            return True

        offered = partner.target_partner_trl
        if offered is not None and not offered.is_open and offered.contains(org.current_trl):
            return True

        if org.target_trl is not None and partner.current_trl is not None:
            return abs(org.target_trl - partner.current_trl) <= self.TARGET_TRL_TOLERANCE

        return False

    # -------------------------------------------------------------------------
    # Industry / technology
    # -------------------------------------------------------------------------

    def _score_industry(
        self,
        org: Organization,
        partner: Organization,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        points = 0

        org_sector = self.taxonomy.organization_sector(org)
        partner_sector = self.taxonomy.organization_sector(partner)
        details["org_sector"] = self.taxonomy.sector_name(org_sector)
        details["org_sector_en"] = self.taxonomy.sector_name(org_sector, "en")
        details["partner_sector"] = self.taxonomy.sector_name(partner_sector)
        details["partner_sector_en"] = self.taxonomy.sector_name(partner_sector, "en")

        if org_sector and partner_sector:
            if org_sector == partner_sector:
                points += self.SAME_INDUSTRY_POINTS
                reasons.append(ReasonCode.SAME_INDUSTRY)
            else:
                relevance = self.taxonomy.relevance(org_sector, partner_sector)
                details["relevance_percent"] = round(relevance * 100)
                if relevance >= self.STRONG_RELEVANCE_THRESHOLD:
                    points += self.STRONG_RELEVANCE_POINTS
                    reasons.append(ReasonCode.CROSS_INDUSTRY_STRONG)
                elif relevance >= self.PARTIAL_RELEVANCE_THRESHOLD:
                    points += self.PARTIAL_RELEVANCE_POINTS
                    reasons.append(ReasonCode.CROSS_INDUSTRY_PARTIAL)

        fields = self._matched_desired_fields(org, partner, partner_sector)
        if fields:
            points += min(self.DESIRED_FIELD_MAX_POINTS, self.DESIRED_FIELD_POINTS * len(fields))
            reasons.append(ReasonCode.DESIRED_FIELD_MATCH)
            details["matched_fields"] = ", ".join(fields[:3])

        technologies = self._matched_technologies(org, partner)
        if technologies:
            points += min(self.TECHNOLOGY_MAX_POINTS, self.TECHNOLOGY_POINTS * len(technologies))
            reasons.append(ReasonCode.TECHNOLOGY_MATCH)
            details["matched_technologies"] = ", ".join(technologies[:3])

        return min(points, self.INDUSTRY_MAX_POINTS)

    def _matched_desired_fields(
        self,
        org: Organization,
        partner: Organization,
        partner_sector: Optional[str],
    ) -> list[str]:
        """Desired consortium fields covered by the partner's sector or focus areas."""
        partner_labels = [normalize(partner.industry_sector)]
        partner_labels.extend(normalize(area) for area in partner.research_focus_areas)

        matched = []
        for field in org.desired_consortium_fields:
            n = normalize(field)
            if not n:
                continue
            field_sector = self.taxonomy.find_sector(field)
            if (field_sector and field_sector == partner_sector) or any(
                keywords_overlap(n, label) for label in partner_labels
            ):
                matched.append(field)
        return matched

    def _matched_technologies(self, org: Organization, partner: Organization) -> list[str]:
        """Desired technologies the partner holds, directly or via a shared technology domain."""
        partner_technologies = [normalize(t) for t in partner.key_technologies if normalize(t)]
        partner_domains = frozenset().union(
            *(self.taxonomy.match_technology_domains(t) for t in partner_technologies)
        )

        matched = []
        for tech in org.desired_technologies:
            n = normalize(tech)
            if not n:
                continue
            if any(keywords_overlap(n, pt) for pt in partner_technologies) or (
                self.taxonomy.match_technology_domains(n) & partner_domains
            ):
                matched.append(tech)
        return matched

    # -------------------------------------------------------------------------
    # Scale and experience
    # -------------------------------------------------------------------------

    def _score_scale(
        self,
        org: Organization,
        partner: Organization,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        gap = self._scale_gap(org, partner)
        if gap is None:
            reasons.append(ReasonCode.SCALE_DATA_LIMITED)
            return self.SCALE_DATA_LIMITED_POINTS

        details["scale_gap"] = gap
        if gap not in self.SCALE_POINTS:
            return 0
        points, reason = self.SCALE_POINTS[gap]
        reasons.append(reason)
        return points

    @staticmethod
    def _scale_gap(org: Organization, partner: Organization) -> Optional[int]:
        """Bracket distance by employee count, else by revenue; None when not comparable."""
        a, b = org.scale, partner.scale
        if a.employee_count is not None and b.employee_count is not None:
            return abs(a.employee_count.rank - b.employee_count.rank)
        if a.revenue is not None and b.revenue is not None:
            if RevenueRange.NONE in (a.revenue, b.revenue):
                return None
            return abs(a.revenue.rank - b.revenue.rank)
        return None

    def _score_experience(
        self,
        org: Organization,
        partner: Organization,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        if org.has_rd_experience and partner.has_rd_experience:
            points = self.MUTUAL_EXPERIENCE_POINTS
            reasons.append(ReasonCode.MUTUAL_RD_EXPERIENCE)
        elif org.has_rd_experience or partner.has_rd_experience:
            points = self.PARTIAL_EXPERIENCE_POINTS
            reasons.append(ReasonCode.PARTIAL_RD_EXPERIENCE)
        else:
            return 0

        bonus, tier = collaboration_bonus(partner.collaboration_count)
        if tier:
            points += bonus
            reasons.append(ReasonCode.PARTNER_COLLABORATION_HISTORY)
            details["partner_collaboration_count"] = partner.collaboration_count
        return points
