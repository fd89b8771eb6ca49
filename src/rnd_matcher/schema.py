"""Pydantic models for the R&D matching engine.

Input schemas for organization and program profiles, and output schemas for
scores, explanations and ranked results. Inputs are frozen: a profile cannot
change while it is being scored.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Profile Enums
# =============================================================================


class OrganizationKind(str, Enum):
    """Kind of organization applying for programs or looking for partners."""
    COMPANY = "COMPANY"
    RESEARCH_INSTITUTE = "RESEARCH_INSTITUTE"

    @classmethod
    def from_string(cls, value: str) -> "OrganizationKind":
        """Parse organization kind from loose input (handles case and aliases)."""
        mapping = {
            "company": cls.COMPANY,
            "corporation": cls.COMPANY,
            "기업": cls.COMPANY,
            "researchinstitute": cls.RESEARCH_INSTITUTE,
            "institute": cls.RESEARCH_INSTITUTE,
            "연구기관": cls.RESEARCH_INSTITUTE,
        }
        key = value.lower().replace("_", "").replace(" ", "").replace("-", "")
        if key not in mapping:
            raise ValueError(f"Unknown organization kind: {value}")
        return mapping[key]


class _OrderedBracket(str, Enum):
    """Enum whose declaration order is a size ordering."""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)


class EmployeeCountRange(_OrderedBracket):
    """Employee head-count bracket, smallest first."""
    UNDER_10 = "UNDER_10"
    FROM_10_TO_50 = "FROM_10_TO_50"
    FROM_50_TO_100 = "FROM_50_TO_100"
    FROM_100_TO_300 = "FROM_100_TO_300"
    OVER_300 = "OVER_300"


class RevenueRange(_OrderedBracket):
    """Annual revenue bracket (KRW), smallest first.

    NONE means no revenue was reported; it is not adjacent to any bracket.
    """
    NONE = "NONE"
    UNDER_1B = "UNDER_1B"
    FROM_1B_TO_10B = "FROM_1B_TO_10B"
    FROM_10B_TO_50B = "FROM_10B_TO_50B"
    FROM_50B_TO_100B = "FROM_50B_TO_100B"
    OVER_100B = "OVER_100B"


class ProgramStatus(str, Enum):
    """Announcement status of a funding program."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class TargetKind(str, Enum):
    """What is being ranked for an organization."""
    PROGRAM = "PROGRAM"
    PARTNER = "PARTNER"


class SummaryTier(str, Enum):
    """Recommendation strength derived from the total score."""
    STRONGLY_RECOMMENDED = "STRONGLY_RECOMMENDED"
    RECOMMENDED = "RECOMMENDED"
    REVIEW_NEEDED = "REVIEW_NEEDED"
    REFERENCE_ONLY = "REFERENCE_ONLY"


class ReasonCode(str, Enum):
    """Every reason a scorer can emit. Free-form reason strings are never used."""
    # Program: industry / keywords
    KEYWORD_MATCH = "KEYWORD_MATCH"
    SECTOR_MATCH = "SECTOR_MATCH"
    CROSS_INDUSTRY_HIGH_RELEVANCE = "CROSS_INDUSTRY_HIGH_RELEVANCE"
    CROSS_INDUSTRY_MEDIUM_RELEVANCE = "CROSS_INDUSTRY_MEDIUM_RELEVANCE"
    TECHNOLOGY_KEYWORD_MATCH = "TECHNOLOGY_KEYWORD_MATCH"

    # Program: TRL
    TRL_NOT_PROVIDED = "TRL_NOT_PROVIDED"
    TRL_NO_REQUIREMENT = "TRL_NO_REQUIREMENT"
    TRL_PERFECT_MATCH = "TRL_PERFECT_MATCH"
    TRL_TOO_LOW_CLOSE = "TRL_TOO_LOW_CLOSE"
    TRL_TOO_HIGH_CLOSE = "TRL_TOO_HIGH_CLOSE"
    TRL_TOO_LOW_MODERATE = "TRL_TOO_LOW_MODERATE"
    TRL_TOO_HIGH_MODERATE = "TRL_TOO_HIGH_MODERATE"
    TRL_TOO_LOW_FAR = "TRL_TOO_LOW_FAR"
    TRL_TOO_HIGH_FAR = "TRL_TOO_HIGH_FAR"
    TRL_TOO_FAR = "TRL_TOO_FAR"

    # Program: organization type
    TYPE_MATCH = "TYPE_MATCH"

    # Program: R&D experience
    RD_EXPERIENCE = "RD_EXPERIENCE"
    COLLABORATION_LIMITED = "COLLABORATION_LIMITED"
    COLLABORATION_MODERATE = "COLLABORATION_MODERATE"
    COLLABORATION_EXTENSIVE = "COLLABORATION_EXTENSIVE"

    # Program: deadline
    DEADLINE_URGENT = "DEADLINE_URGENT"
    DEADLINE_SOON = "DEADLINE_SOON"
    DEADLINE_MODERATE = "DEADLINE_MODERATE"
    DEADLINE_FAR = "DEADLINE_FAR"
    DEADLINE_NOT_ANNOUNCED = "DEADLINE_NOT_ANNOUNCED"

    # Partner: TRL fit
    PERFECT_TRL_COMPLEMENT_COMMERCIALIZATION = "PERFECT_TRL_COMPLEMENT_COMMERCIALIZATION"
    STRONG_TRL_COMPLEMENT_EARLY = "STRONG_TRL_COMPLEMENT_EARLY"
    TRL_PREFERENCE_MATCH = "TRL_PREFERENCE_MATCH"
    TRL_SIMILAR = "TRL_SIMILAR"
    TRL_GAP_MODERATE = "TRL_GAP_MODERATE"
    TRL_GAP_WIDE = "TRL_GAP_WIDE"
    TRL_DATA_MISSING = "TRL_DATA_MISSING"

    # Partner: industry / technology
    SAME_INDUSTRY = "SAME_INDUSTRY"
    CROSS_INDUSTRY_STRONG = "CROSS_INDUSTRY_STRONG"
    CROSS_INDUSTRY_PARTIAL = "CROSS_INDUSTRY_PARTIAL"
    DESIRED_FIELD_MATCH = "DESIRED_FIELD_MATCH"
    TECHNOLOGY_MATCH = "TECHNOLOGY_MATCH"

    # Partner: scale
    SAME_SCALE = "SAME_SCALE"
    ADJACENT_SCALE = "ADJACENT_SCALE"
    SCALE_GAP_MODERATE = "SCALE_GAP_MODERATE"
    SCALE_GAP_LARGE = "SCALE_GAP_LARGE"
    SCALE_DATA_LIMITED = "SCALE_DATA_LIMITED"

    # Partner: experience
    MUTUAL_RD_EXPERIENCE = "MUTUAL_RD_EXPERIENCE"
    PARTIAL_RD_EXPERIENCE = "PARTIAL_RD_EXPERIENCE"
    PARTNER_COLLABORATION_HISTORY = "PARTNER_COLLABORATION_HISTORY"


def _upper_enum_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper().replace("-", "_").replace(" ", "_")
    return value


# =============================================================================
# Input Models
# =============================================================================


class TRLRange(BaseModel):
    """Inclusive TRL range; either bound may be left open."""
    model_config = ConfigDict(frozen=True)

    min_trl: Optional[int] = Field(None, ge=1, le=9)
    max_trl: Optional[int] = Field(None, ge=1, le=9)

    @model_validator(mode="after")
    def check_order(self) -> "TRLRange":
        if self.min_trl is not None and self.max_trl is not None and self.min_trl > self.max_trl:
            raise ValueError(f"min_trl ({self.min_trl}) is greater than max_trl ({self.max_trl})")
        return self

    def contains(self, trl: Optional[int]) -> bool:
        """Check whether a TRL falls inside the range (open bounds default to 1 and 9)."""
        if trl is None:
            return False
        low = self.min_trl if self.min_trl is not None else 1
        high = self.max_trl if self.max_trl is not None else 9
        return low <= trl <= high

    @property
    def is_open(self) -> bool:
        return self.min_trl is None and self.max_trl is None


class OrgScale(BaseModel):
    """Size brackets used for partner scale comparison."""
    model_config = ConfigDict(frozen=True)

    employee_count: Optional[EmployeeCountRange] = None
    revenue: Optional[RevenueRange] = None

    @field_validator("employee_count", "revenue", mode="before")
    @classmethod
    def normalize_bracket(cls, v):
        return _upper_enum_value(v)


class Organization(BaseModel):
    """A company or research institute profile."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    kind: OrganizationKind = OrganizationKind.COMPANY
    industry_sector: Optional[str] = None

    # Technology readiness
    current_trl: Optional[int] = Field(None, ge=1, le=9)
    target_trl: Optional[int] = Field(
        None, ge=1, le=9,
        description="TRL the organization expects to reach; used as a partner preference"
    )

    # R&D track record
    has_rd_experience: bool = False
    collaboration_count: int = Field(0, ge=0)

    # Free-text profile fields (normalized through the taxonomy)
    research_focus_areas: list[str] = Field(default_factory=list)
    key_technologies: list[str] = Field(default_factory=list)

    # Partner search preferences
    desired_consortium_fields: list[str] = Field(default_factory=list)
    desired_technologies: list[str] = Field(default_factory=list)
    target_partner_trl: Optional[TRLRange] = None

    scale: OrgScale = Field(default_factory=OrgScale)

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("id must not be blank")
        return v.strip()

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v):
        if isinstance(v, str) and not isinstance(v, OrganizationKind):
            return OrganizationKind.from_string(v)
        return v


class Program(BaseModel):
    """A government R&D funding program announcement."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    description: str = ""
    agency: Optional[str] = None
    category: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    target_types: frozenset[OrganizationKind] = Field(
        default_factory=frozenset,
        description="Eligible organization kinds; empty means every kind is eligible"
    )
    min_trl: Optional[int] = Field(None, ge=1, le=9)
    max_trl: Optional[int] = Field(None, ge=1, le=9)
    deadline: Optional[date] = None
    status: ProgramStatus = ProgramStatus.ACTIVE

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("id must not be blank")
        return v.strip()

    @field_validator("target_types", mode="before")
    @classmethod
    def parse_target_types(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(
            OrganizationKind.from_string(t) if isinstance(t, str) and not isinstance(t, OrganizationKind) else t
            for t in v
        )

    @field_validator("deadline", mode="before")
    @classmethod
    def parse_deadline(cls, v):
        # Announcement feeds carry full timestamps; only the calendar day matters.
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10 and v[10] in "T ":
            return v[:10]
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return _upper_enum_value(v)

    @model_validator(mode="after")
    def check_trl_order(self) -> "Program":
        if self.min_trl is not None and self.max_trl is not None and self.min_trl > self.max_trl:
            raise ValueError(f"min_trl ({self.min_trl}) is greater than max_trl ({self.max_trl})")
        return self


# =============================================================================
# Scoring Output Models
# =============================================================================


class MatchBreakdown(BaseModel):
    """Per-dimension points for a program match."""
    industry: int = Field(0, ge=0, le=30)
    trl: int = Field(0, ge=0, le=20)
    organization_type: int = Field(0, ge=0, le=20)
    rd_experience: int = Field(0, ge=0, le=15)
    deadline: int = Field(0, ge=0, le=15)

    def total(self) -> int:
        return self.industry + self.trl + self.organization_type + self.rd_experience + self.deadline


class CompatibilityBreakdown(BaseModel):
    """Per-dimension points for a partner compatibility score."""
    trl_fit: int = Field(0, ge=0, le=40)
    industry: int = Field(0, ge=0, le=30)
    scale: int = Field(0, ge=0, le=15)
    experience: int = Field(0, ge=0, le=15)

    def total(self) -> int:
        return self.trl_fit + self.industry + self.scale + self.experience


class Explanation(BaseModel):
    """Localized, human-readable explanation of a score."""
    summary: str
    tier: SummaryTier
    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    locale: str


class MatchScore(BaseModel):
    """Score of one program for one organization."""
    program_id: str
    program_title: str = ""
    score: int = Field(..., ge=0, le=100)
    breakdown: MatchBreakdown
    reason_codes: list[ReasonCode] = Field(default_factory=list)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Placeholder values for explanation templates"
    )
    explanation: Optional[Explanation] = None

    @model_validator(mode="after")
    def check_total(self) -> "MatchScore":
        if self.score != self.breakdown.total():
            raise ValueError(f"score {self.score} does not equal breakdown total {self.breakdown.total()}")
        return self

    @property
    def target_id(self) -> str:
        return self.program_id

    @property
    def target_name(self) -> str:
        return self.program_title


class CompatibilityScore(BaseModel):
    """Compatibility of one partner candidate, seen from the requesting organization."""
    partner_id: str
    partner_name: str = ""
    score: int = Field(..., ge=0, le=100)
    breakdown: CompatibilityBreakdown
    reason_codes: list[ReasonCode] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    explanation: Optional[Explanation] = None

    @model_validator(mode="after")
    def check_total(self) -> "CompatibilityScore":
        if self.score != self.breakdown.total():
            raise ValueError(f"score {self.score} does not equal breakdown total {self.breakdown.total()}")
        return self

    @property
    def target_id(self) -> str:
        return self.partner_id

    @property
    def target_name(self) -> str:
        return self.partner_name


# =============================================================================
# Ranking Output Models
# =============================================================================


class CandidateFailure(BaseModel):
    """A candidate that could not be validated or scored."""
    candidate_id: Optional[str] = None
    error: str


class RankingResult(BaseModel):
    """Ranked, explained and paginated results for one organization."""
    organization_id: str
    kind: TargetKind
    results: list[Union[MatchScore, CompatibilityScore]] = Field(default_factory=list)
    failures: list[CandidateFailure] = Field(default_factory=list)

    total_candidates: int = 0
    scored_count: int = 0
    below_min_score: int = 0  # scored, but dropped by min_score
    offset: int = 0
    limit: Optional[int] = None
    min_score: Optional[int] = None

    cached: bool = False
    taxonomy_version: str = ""
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    no_eligible_matches: bool = False
    message: Optional[str] = None
