"""Program match scorer.

Scores how well an organization fits a funding program on a 0-100 scale,
split across five dimensions:

    industry/keywords   0-30
    TRL                 0-20
    organization type   0-20
    R&D experience      0-15
    deadline proximity  0-15

Every point awarded is backed by a ReasonCode so the result can be explained.
"""

from datetime import date
from typing import Any, Optional

from .schema import (
    MatchBreakdown,
    MatchScore,
    Organization,
    OrganizationKind,
    Program,
    ReasonCode,
)
from .taxonomy import Taxonomy, keywords_overlap, normalize
from .trl import score_trl, trl_stage


def collaboration_bonus(count: int) -> tuple[int, Optional[str]]:
    """Bonus points and tier for a collaboration count.

    Returns:
        (points, tier) where tier is "LIMITED", "MODERATE", "EXTENSIVE" or None.
    """
    if count >= 4:
        return 5, "EXTENSIVE"
    if count >= 2:
        return 4, "MODERATE"
    if count == 1:
        return 2, "LIMITED"
    return 0, None


class ProgramMatchScorer:
    """Scores programs against an organization profile.

    Scoring principles:
    - Pure function of (organization, program, as_of)
    - Lookup misses contribute zero, they never raise
    - Other reasons are reported only when they add points, but the TRL reason
      is always reported, even at zero points (TRL_TOO_LOW_FAR, TRL_TOO_FAR),
      so the explanation can warn about a TRL mismatch
    """

    # Industry / keyword
    KEYWORD_FIRST_POINTS = 5
    KEYWORD_EXTRA_POINTS = 2
    KEYWORD_MAX_POINTS = 15
    SECTOR_MATCH_POINTS = 10
    HIGH_RELEVANCE_THRESHOLD = 0.7
    HIGH_RELEVANCE_POINTS = 5
    MEDIUM_RELEVANCE_THRESHOLD = 0.5
    MEDIUM_RELEVANCE_POINTS = 3
    TECHNOLOGY_POINTS = 2
    TECHNOLOGY_MAX_POINTS = 5
    INDUSTRY_MAX_POINTS = 30

    # Organization type
    TYPE_MATCH_POINTS = 20

    # R&D experience
    RD_EXPERIENCE_POINTS = 10
    COLLABORATION_REASONS = {
        "LIMITED": ReasonCode.COLLABORATION_LIMITED,
        "MODERATE": ReasonCode.COLLABORATION_MODERATE,
        "EXTENSIVE": ReasonCode.COLLABORATION_EXTENSIVE,
    }

    # Deadline: (max days left, points, reason), checked in order
    DEADLINE_TIERS = [
        (7, 15, ReasonCode.DEADLINE_URGENT),
        (30, 12, ReasonCode.DEADLINE_SOON),
        (60, 8, ReasonCode.DEADLINE_MODERATE),
    ]
    DEADLINE_FAR_POINTS = 5
    DEADLINE_NOT_ANNOUNCED_POINTS = 8

    def __init__(self, taxonomy: Taxonomy):
        self.taxonomy = taxonomy

    def score(
        self,
        org: Organization,
        program: Program,
        as_of: Optional[date] = None,
    ) -> MatchScore:
        """Score a single program for an organization.

        Args:
            org: The applying organization
            program: The program announcement
            as_of: Reference date for deadline proximity (default: today)

        Returns:
            MatchScore with breakdown, ordered reason codes and template details
        """
        as_of = as_of or date.today()
        reasons: list[ReasonCode] = []
        details: dict[str, Any] = {}

        breakdown = MatchBreakdown(
            industry=self._score_industry(org, program, reasons, details),
            trl=self._score_trl(org, program, reasons, details),
            organization_type=self._score_organization_type(org, program, reasons, details),
            rd_experience=self._score_rd_experience(org, reasons, details),
            deadline=self._score_deadline(program, as_of, reasons, details),
        )

        return MatchScore(
            program_id=program.id,
            program_title=program.title,
            score=breakdown.total(),
            breakdown=breakdown,
            reason_codes=reasons,
            details=details,
        )

    def _score_industry(
        self,
        org: Organization,
        program: Program,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        """Keyword overlap, sector equality/relevance and technology bonus."""
        points = 0

        org_keywords = self.taxonomy.extract_keywords(org)
        program_keywords = self.taxonomy.extract_keywords(program)
        matched = sorted(org_keywords & program_keywords)
        if matched:
            points += min(
                self.KEYWORD_MAX_POINTS,
                self.KEYWORD_FIRST_POINTS + self.KEYWORD_EXTRA_POINTS * (len(matched) - 1),
            )
            reasons.append(ReasonCode.KEYWORD_MATCH)
            details["matched_keywords"] = ", ".join(matched[:5])
            details["matched_keyword_count"] = len(matched)

        org_sector = self.taxonomy.organization_sector(org)
        program_sector = self.taxonomy.detect_program_sector(program)
        details["org_sector"] = self.taxonomy.sector_name(org_sector)
        details["org_sector_en"] = self.taxonomy.sector_name(org_sector, "en")
        details["program_sector"] = self.taxonomy.sector_name(program_sector)
        details["program_sector_en"] = self.taxonomy.sector_name(program_sector, "en")

        if org_sector and program_sector:
            if org_sector == program_sector:
                points += self.SECTOR_MATCH_POINTS
                reasons.append(ReasonCode.SECTOR_MATCH)
            else:
                relevance = self.taxonomy.relevance(org_sector, program_sector)
                details["relevance_percent"] = round(relevance * 100)
                if relevance >= self.HIGH_RELEVANCE_THRESHOLD:
                    points += self.HIGH_RELEVANCE_POINTS
                    reasons.append(ReasonCode.CROSS_INDUSTRY_HIGH_RELEVANCE)
                elif relevance >= self.MEDIUM_RELEVANCE_THRESHOLD:
                    points += self.MEDIUM_RELEVANCE_POINTS
                    reasons.append(ReasonCode.CROSS_INDUSTRY_MEDIUM_RELEVANCE)

        # Research institutes are rewarded for technology fit beyond the sector
        if org.kind == OrganizationKind.RESEARCH_INSTITUTE and org.key_technologies:
            technologies = [
                tech for tech in org.key_technologies
                if any(keywords_overlap(normalize(tech), pk) for pk in program_keywords)
            ]
            if technologies:
                points += min(self.TECHNOLOGY_MAX_POINTS, self.TECHNOLOGY_POINTS * len(technologies))
                reasons.append(ReasonCode.TECHNOLOGY_KEYWORD_MATCH)
                details["matched_technologies"] = ", ".join(technologies[:3])

        return min(points, self.INDUSTRY_MAX_POINTS)

    def _score_trl(
        self,
        org: Organization,
        program: Program,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        result = score_trl(org.current_trl, program.min_trl, program.max_trl)
        reasons.append(result.reason)

        details["org_trl"] = org.current_trl if org.current_trl is not None else "-"
        details["trl_min"] = program.min_trl if program.min_trl is not None else 1
        details["trl_max"] = program.max_trl if program.max_trl is not None else 9
        if result.distance:
            details["trl_distance"] = result.distance
        if org.current_trl is not None:
            details["trl_stage"] = trl_stage(org.current_trl)
            details["trl_stage_en"] = trl_stage(org.current_trl, "en")
        return result.points

    def _score_organization_type(
        self,
        org: Organization,
        program: Program,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        """Programs without declared target types are open to every kind."""
        details["org_kind"] = org.kind.value
        if not program.target_types or org.kind in program.target_types:
            reasons.append(ReasonCode.TYPE_MATCH)
            return self.TYPE_MATCH_POINTS
        return 0

    def _score_rd_experience(
        self,
        org: Organization,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        if not org.has_rd_experience:
            return 0

        points = self.RD_EXPERIENCE_POINTS
        reasons.append(ReasonCode.RD_EXPERIENCE)

        bonus, tier = collaboration_bonus(org.collaboration_count)
        if tier:
            points += bonus
            reasons.append(self.COLLABORATION_REASONS[tier])
            details["collaboration_count"] = org.collaboration_count
        return points

    def _score_deadline(
        self,
        program: Program,
        as_of: date,
        reasons: list[ReasonCode],
        details: dict[str, Any],
    ) -> int:
        if program.deadline is None:
            reasons.append(ReasonCode.DEADLINE_NOT_ANNOUNCED)
            return self.DEADLINE_NOT_ANNOUNCED_POINTS

        days_left = (program.deadline - as_of).days
        details["deadline"] = program.deadline.isoformat()
        details["days_left"] = days_left

        if days_left < 0:
            return 0
        for max_days, points, reason in self.DEADLINE_TIERS:
            if days_left <= max_days:
                reasons.append(reason)
                return points
        reasons.append(ReasonCode.DEADLINE_FAR)
        return self.DEADLINE_FAR_POINTS
