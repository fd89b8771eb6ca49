"""Taxonomy - industry sectors, technology domains and keyword normalization.

Resolves free-text industry and technology labels (mostly Korean) to a fixed
set of sectors, and answers how related two sectors are. The data ships as
YAML next to this module and is loaded once into an immutable Taxonomy.

Lookup misses are never errors: an unresolvable label simply contributes
nothing to a score.
"""

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .schema import Organization, Program

logger = logging.getLogger(__name__)

DEFAULT_TAXONOMY_PATH = Path(__file__).parent / "data" / "taxonomy.yaml"

# Program text pooled into keyword sets
TITLE_MIN_WORD_LENGTH = 2
DESCRIPTION_PREFIX_CHARS = 200
DESCRIPTION_MIN_WORD_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")
_WORD_PUNCTUATION = ".,()[]{}<>\"'`·:;!?“”‘’「」『』"


class TaxonomyError(ValueError):
    """Raised when taxonomy data is malformed or inconsistent."""
    pass


def normalize(text: Optional[str]) -> str:
    """Normalize a keyword for comparison: drop all whitespace, upper-case.

    Idempotent. Korean text is unaffected by case folding, so spacing
    variants such as "인공 지능" and "인공지능" normalize to the same key.
    """
    if not text:
        return ""
    return _WHITESPACE.sub("", text).upper()


# =============================================================================
# Data Models (YAML shape)
# =============================================================================


class SubSectorDefinition(BaseModel):
    """A sub-sector with its own keyword list."""
    name: str
    keywords: list[str] = Field(default_factory=list)


class SectorDefinition(BaseModel):
    """A top-level industry sector."""
    name: str
    name_en: str = ""
    keywords: list[str] = Field(default_factory=list)
    sub_sectors: dict[str, SubSectorDefinition] = Field(default_factory=dict)


class TaxonomyData(BaseModel):
    """Raw taxonomy file contents."""
    version: str
    sectors: dict[str, SectorDefinition]
    technology_domains: dict[str, list[str]] = Field(default_factory=dict)
    relevance: dict[str, dict[str, float]] = Field(default_factory=dict)


# =============================================================================
# Taxonomy
# =============================================================================


class Taxonomy:
    """Immutable, validated view over the taxonomy data.

    The relevance matrix is symmetric and reflexive: relevance(a, a) is 1.0,
    relevance(a, b) == relevance(b, a), and undefined pairs are 0.0.
    """

    def __init__(self, data: TaxonomyData):
        self._data = data
        self.version = data.version

        self._sectors = MappingProxyType(dict(data.sectors))
        self._sector_keys = MappingProxyType({normalize(sid): sid for sid in data.sectors})

        self._sector_keywords = MappingProxyType({
            sid: tuple(normalize(k) for k in sector.keywords if normalize(k))
            for sid, sector in data.sectors.items()
        })
        self._sub_sector_keywords = MappingProxyType({
            (sid, sub_id): tuple(normalize(k) for k in sub.keywords if normalize(k))
            for sid, sector in data.sectors.items()
            for sub_id, sub in sector.sub_sectors.items()
        })
        self._technology_domains = MappingProxyType({
            domain: tuple(normalize(k) for k in keywords if normalize(k))
            for domain, keywords in data.technology_domains.items()
        })
        self._relevance = MappingProxyType(self._build_relevance(data))

    @staticmethod
    def _build_relevance(data: TaxonomyData) -> dict[tuple[str, str], float]:
        """Mirror the upper-triangle matrix into a symmetric lookup."""
        matrix: dict[tuple[str, str], float] = {}
        issues = []

        for a, row in data.relevance.items():
            if a not in data.sectors:
                issues.append(f"relevance: unknown sector '{a}'")
                continue
            for b, value in row.items():
                if b not in data.sectors:
                    issues.append(f"relevance: unknown sector '{b}' (row {a})")
                    continue
                if not 0.0 <= value <= 1.0:
                    issues.append(f"relevance: {a}/{b} = {value} is outside [0, 1]")
                    continue
                if a == b:
                    if value != 1.0:
                        issues.append(f"relevance: diagonal {a}/{a} must be 1.0, got {value}")
                    continue
                existing = matrix.get((a, b))
                if existing is not None and existing != value:
                    issues.append(
                        f"relevance: asymmetric entries for {a}/{b} ({existing} vs {value})"
                    )
                    continue
                matrix[(a, b)] = value
                matrix[(b, a)] = value

        if issues:
            raise TaxonomyError("Invalid taxonomy: " + "; ".join(issues))
        return matrix

    # -------------------------------------------------------------------------
    # Sector lookup
    # -------------------------------------------------------------------------

    @property
    def sector_ids(self) -> list[str]:
        return list(self._sectors)

    def sector(self, sector_id: str) -> Optional[SectorDefinition]:
        return self._sectors.get(sector_id)

    def sector_name(self, sector_id: Optional[str], locale: str = "ko") -> str:
        """Display name of a sector; falls back to the id itself."""
        sector = self._sectors.get(sector_id) if sector_id else None
        if sector is None:
            return sector_id or ""
        if locale == "en" and sector.name_en:
            return sector.name_en
        return sector.name

    def find_sector(self, keyword: Optional[str]) -> Optional[str]:
        """Resolve a free-text label to a sector id.

        Tries a direct sector-id match, then sector keywords, then
        sub-sector keywords. Keyword matches are substring matches in either
        direction on normalized text.
        """
        n = normalize(keyword)
        if not n:
            return None
        if n in self._sector_keys:
            return self._sector_keys[n]
        for sector_id, keywords in self._sector_keywords.items():
            if any(keywords_overlap(n, k) for k in keywords):
                return sector_id
        match = self.find_sub_sector(n)
        return match[0] if match else None

    def find_sub_sector(self, keyword: Optional[str]) -> Optional[tuple[str, str]]:
        """Resolve a free-text label to (sector_id, sub_sector_id).

        Only sub-sector keywords are consulted.
        """
        n = normalize(keyword)
        if not n:
            return None
        for key, keywords in self._sub_sector_keywords.items():
            if any(keywords_overlap(n, k) for k in keywords):
                return key
        return None

    def keywords_for_sector(self, sector_id: str) -> frozenset[str]:
        """All normalized keywords of a sector, including its sub-sectors."""
        keywords = set(self._sector_keywords.get(sector_id, ()))
        for (sid, _), sub_keywords in self._sub_sector_keywords.items():
            if sid == sector_id:
                keywords.update(sub_keywords)
        return frozenset(keywords)

    def match_technology_domains(self, keyword: Optional[str]) -> frozenset[str]:
        """Technology domains (e.g. COMMERCIALIZATION) a keyword belongs to."""
        n = normalize(keyword)
        if not n:
            return frozenset()
        return frozenset(
            domain for domain, keywords in self._technology_domains.items()
            if any(keywords_overlap(n, k) for k in keywords)
        )

    def relevance(self, a: Optional[str], b: Optional[str]) -> float:
        """Cross-industry relevance between two sector ids, in [0, 1]."""
        if not a or not b:
            return 0.0
        if a == b:
            return 1.0
        return self._relevance.get((a, b), 0.0)

    # -------------------------------------------------------------------------
    # Entity keywords
    # -------------------------------------------------------------------------

    def organization_sector(self, org: Organization) -> Optional[str]:
        return self.find_sector(org.industry_sector)

    def detect_program_sector(self, program: Program) -> Optional[str]:
        """Sector of a program: category first, then explicit keywords, then title words."""
        if program.category:
            sector = self.find_sector(program.category)
            if sector:
                return sector
        for keyword in program.keywords:
            sector = self.find_sector(keyword)
            if sector:
                return sector
        for word in _split_words(program.title, TITLE_MIN_WORD_LENGTH):
            sector = self.find_sector(word)
            if sector:
                return sector
        return None

    def extract_keywords(self, entity: Union[Organization, Program]) -> frozenset[str]:
        """Pool every text-bearing field of an entity into one normalized set."""
        if isinstance(entity, Organization):
            raw = []
            if entity.industry_sector:
                raw.append(entity.industry_sector)
                sector_id = self.find_sector(entity.industry_sector)
                if sector_id:
                    raw.append(self.sector_name(sector_id))
            raw.extend(entity.research_focus_areas)
            raw.extend(entity.key_technologies)
        elif isinstance(entity, Program):
            raw = list(_split_words(entity.title, TITLE_MIN_WORD_LENGTH))
            if entity.category:
                raw.append(entity.category)
            raw.extend(entity.keywords)
            raw.extend(_split_words(
                entity.description[:DESCRIPTION_PREFIX_CHARS], DESCRIPTION_MIN_WORD_LENGTH
            ))
        else:
            raise TypeError(f"Cannot extract keywords from {type(entity).__name__}")

        return frozenset(n for n in (normalize(k) for k in raw) if n)


def keywords_overlap(a: str, b: str) -> bool:
    """Exact or substring match in either direction on normalized keywords."""
    if not a or not b:
        return False
    return a == b or b in a or a in b


def _split_words(text: Optional[str], min_length: int) -> list[str]:
    if not text:
        return []
    words = (w.strip(_WORD_PUNCTUATION) for w in text.split())
    return [w for w in words if len(w) >= min_length]


# =============================================================================
# Loading
# =============================================================================


# Process-wide default taxonomy
_taxonomy: Optional[Taxonomy] = None


def load_taxonomy(path: Optional[Path] = None) -> Taxonomy:
    """Load and validate a taxonomy file.

    Args:
        path: Path to a taxonomy YAML file. Defaults to the bundled taxonomy.

    Returns:
        The validated Taxonomy.

    Raises:
        TaxonomyError: If the file is malformed or the relevance matrix is
            inconsistent.
    """
    path = Path(path) if path else DEFAULT_TAXONOMY_PATH

    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)

    try:
        data = TaxonomyData.model_validate(raw or {})
    except ValidationError as e:
        raise TaxonomyError(f"Invalid taxonomy file {path}: {e}") from e

    taxonomy = Taxonomy(data)
    logger.debug(
        "Loaded taxonomy %s from %s (%d sectors)", taxonomy.version, path, len(taxonomy.sector_ids)
    )
    return taxonomy


def get_taxonomy() -> Taxonomy:
    """Get the process-wide taxonomy, loading it on first use.

    Honors ``taxonomy_path`` from the active configuration.
    """
    global _taxonomy
    if _taxonomy is None:
        from .config import get_config

        configured = get_config().taxonomy_path
        _taxonomy = load_taxonomy(Path(configured) if configured else None)
    return _taxonomy


def reset_taxonomy() -> None:
    """Drop the cached default taxonomy (it is reloaded on next use)."""
    global _taxonomy
    _taxonomy = None
