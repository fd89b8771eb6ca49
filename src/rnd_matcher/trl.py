"""TRL comparator.

Scores how well an organization's Technology Readiness Level (1-9) fits a
required range. Being above a range is penalized less than being below it by
the same distance: a more mature technology can usually still use the
program, a less mature one usually cannot.
"""

from dataclasses import dataclass
from typing import Optional

from .schema import ReasonCode

TRL_MIN = 1
TRL_MAX = 9

MAX_POINTS = 20
NOT_PROVIDED_POINTS = 5

# distance -> (points below range, points above range)
DISTANCE_POINTS = {
    1: (12, 15),
    2: (6, 10),
    3: (0, 5),
}

# distance -> (reason below range, reason above range)
DISTANCE_REASONS = {
    1: (ReasonCode.TRL_TOO_LOW_CLOSE, ReasonCode.TRL_TOO_HIGH_CLOSE),
    2: (ReasonCode.TRL_TOO_LOW_MODERATE, ReasonCode.TRL_TOO_HIGH_MODERATE),
    3: (ReasonCode.TRL_TOO_LOW_FAR, ReasonCode.TRL_TOO_HIGH_FAR),
}

TRL_STAGES = {
    "ko": {
        "basic": "기초연구 단계",
        "applied": "응용연구/개발 단계",
        "commercial": "상용화/사업화 단계",
    },
    "en": {
        "basic": "basic research stage",
        "applied": "applied research & development stage",
        "commercial": "commercialization stage",
    },
}

TRL_DESCRIPTIONS = {
    "ko": {
        1: "기본 원리 발견",
        2: "기술 개념 정립",
        3: "개념 증명 (PoC)",
        4: "실험실 검증",
        5: "실제 환경 시험",
        6: "시제품 제작",
        7: "파일럿 생산",
        8: "실증 및 인증",
        9: "양산 및 상용화",
    },
    "en": {
        1: "basic principles observed",
        2: "technology concept formulated",
        3: "proof of concept",
        4: "validated in the lab",
        5: "validated in a relevant environment",
        6: "prototype demonstrated",
        7: "pilot production",
        8: "system qualified and certified",
        9: "mass production and commercialization",
    },
}


@dataclass(frozen=True)
class TRLResult:
    """Outcome of a TRL comparison."""
    points: int
    reason: ReasonCode
    distance: Optional[int] = None  # 0 inside the range; None when not comparable
    above: bool = False  # True when the org TRL exceeds the range


def score_trl(
    org_trl: Optional[int],
    range_min: Optional[int],
    range_max: Optional[int],
) -> TRLResult:
    """Score an organization TRL against a required range.

    Args:
        org_trl: The organization's current TRL, or None if unknown.
        range_min: Inclusive lower bound, or None (defaults to 1).
        range_max: Inclusive upper bound, or None (defaults to 9).

    Returns:
        TRLResult with points in [0, 20] and exactly one reason code.
    """
    if org_trl is None:
        return TRLResult(NOT_PROVIDED_POINTS, ReasonCode.TRL_NOT_PROVIDED)

    if range_min is None and range_max is None:
        return TRLResult(MAX_POINTS, ReasonCode.TRL_NO_REQUIREMENT)

    low = range_min if range_min is not None else TRL_MIN
    high = range_max if range_max is not None else TRL_MAX

    if low <= org_trl <= high:
        return TRLResult(MAX_POINTS, ReasonCode.TRL_PERFECT_MATCH, distance=0)

    above = org_trl > high
    distance = org_trl - high if above else low - org_trl

    if distance not in DISTANCE_POINTS:
        return TRLResult(0, ReasonCode.TRL_TOO_FAR, distance=distance, above=above)

    side = 1 if above else 0
    return TRLResult(
        DISTANCE_POINTS[distance][side],
        DISTANCE_REASONS[distance][side],
        distance=distance,
        above=above,
    )


def trl_stage(trl: Optional[int], locale: str = "ko") -> str:
    """Development stage of a TRL: basic research (1-3), applied R&D (4-6), commercialization (7-9)."""
    stages = TRL_STAGES.get(locale, TRL_STAGES["ko"])
    if trl is None:
        return ""
    if trl <= 3:
        return stages["basic"]
    if trl <= 6:
        return stages["applied"]
    return stages["commercial"]


def trl_description(trl: Optional[int], locale: str = "ko") -> str:
    """Short description of a TRL level, e.g. "TRL 6: 시제품 제작"."""
    descriptions = TRL_DESCRIPTIONS.get(locale, TRL_DESCRIPTIONS["ko"])
    if trl is None or trl not in descriptions:
        return ""
    return f"TRL {trl}: {descriptions[trl]}"
