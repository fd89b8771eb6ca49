"""R&D Matcher - ranks R&D funding programs and collaboration partners.

Scores an organization against program announcements and partner candidates
with explainable, localized 0-100 scores.
"""

from .engine import MatchingEngine, ScoringTimeoutError
from .explainer import ExplanationGenerator, TemplateRegistryError
from .partner_scorer import PartnerCompatibilityScorer
from .program_scorer import ProgramMatchScorer
from .schema import (
    CompatibilityScore,
    MatchScore,
    Organization,
    OrganizationKind,
    Program,
    RankingResult,
    ReasonCode,
)
from .taxonomy import Taxonomy, TaxonomyError, get_taxonomy, load_taxonomy

__version__ = "1.0.0"

__all__ = [
    "MatchingEngine",
    "ScoringTimeoutError",
    "ExplanationGenerator",
    "TemplateRegistryError",
    "PartnerCompatibilityScorer",
    "ProgramMatchScorer",
    "CompatibilityScore",
    "MatchScore",
    "Organization",
    "OrganizationKind",
    "Program",
    "RankingResult",
    "ReasonCode",
    "Taxonomy",
    "TaxonomyError",
    "get_taxonomy",
    "load_taxonomy",
]
