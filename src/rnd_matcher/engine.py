"""Matching Engine - ranks programs and partners for an organization.

Orchestrates the full pipeline:
1. Validate candidates (per candidate; bad records become failures)
2. Apply the candidate ceiling (pre-filter, then truncate)
3. Score candidates on a bounded thread pool under a request timeout
4. Sort by score with a stable secondary key
5. Attach explanations
6. Paginate in memory

Ranked, explained lists are cached per organization when a cache is
configured.
"""

import hashlib
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import BaseModel, ValidationError

from .cache import CacheKey, ResultCache
from .config import MatcherConfig, get_config
from .explainer import ExplanationGenerator, TemplateRegistryError, discover_locales
from .partner_scorer import PartnerCompatibilityScorer
from .program_scorer import ProgramMatchScorer
from .schema import (
    CandidateFailure,
    CompatibilityScore,
    MatchScore,
    Organization,
    Program,
    RankingResult,
    TargetKind,
)
from .taxonomy import Taxonomy, TaxonomyError, get_taxonomy, load_taxonomy

logger = logging.getLogger(__name__)

Score = Union[MatchScore, CompatibilityScore]
SecondaryKey = Callable[[Score], Any]


class ScoringTimeoutError(RuntimeError):
    """Raised when a ranking request exceeds its scoring time budget."""
    pass


@dataclass
class _RankedSet:
    """Sorted, explained results before pagination (what the cache stores)."""
    results: list = field(default_factory=list)
    failures: list[CandidateFailure] = field(default_factory=list)
    total_candidates: int = 0


class MatchingEngine:
    """Ranks funding programs and partner candidates for an organization.

    Usage:
        engine = MatchingEngine()
        result = engine.score_program_matches(org, programs, limit=10)
        for match in result.results:
            print(match.score, match.explanation.summary)
    """

    def __init__(
        self,
        taxonomy: Optional[Taxonomy] = None,
        config: Optional[MatcherConfig] = None,
        explainer: Optional[ExplanationGenerator] = None,
        cache: Optional[ResultCache] = None,
    ):
        """Initialize the engine.

        Args:
            taxonomy: Taxonomy to score with (default: the bundled taxonomy)
            config: Configuration (default: the global configuration)
            explainer: Explanation generator (default: bundled locales)
            cache: Result cache (default: built from config when caching is enabled)
        """
        self.config = config or get_config()
        self.taxonomy = taxonomy or get_taxonomy()
        self.explainer = explainer or ExplanationGenerator(config=self.config.explanation)

        if cache is None and self.config.cache.enabled:
            cache = ResultCache(
                ttl_seconds=self.config.cache.ttl_seconds,
                max_entries=self.config.cache.max_entries,
            )
        self.cache = cache

        self.program_scorer = ProgramMatchScorer(self.taxonomy)
        self.partner_scorer = PartnerCompatibilityScorer(self.taxonomy)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def score_program_matches(
        self,
        org: Union[Organization, dict],
        programs: Iterable[Union[Program, dict]],
        limit: Optional[int] = None,
        offset: int = 0,
        max_reasons: Optional[int] = None,
        locale: Optional[str] = None,
        as_of: Optional[date] = None,
        secondary_key: Optional[SecondaryKey] = None,
        min_score: Optional[int] = None,
    ) -> RankingResult:
        """Rank programs for an organization.

        Args:
            org: The applying organization (model or dict)
            programs: Candidate programs (models or dicts); callers pass active programs
            limit: Page size (default: assembly.default_limit)
            offset: Number of ranked results to skip
            max_reasons: Cap on reasons per explanation
            locale: Explanation locale
            as_of: Reference date for deadline proximity (default: today)
            secondary_key: Tie-breaker for equal scores (default: program id)
            min_score: Drop results scoring below this (default: assembly.min_score)

        Returns:
            RankingResult with the requested page of explained matches
        """
        org = _coerce_organization(org)
        as_of = as_of or date.today()

        return self._rank(
            kind=TargetKind.PROGRAM,
            org=org,
            candidates=list(programs),
            model=Program,
            score_one=lambda program: self.program_scorer.score(org, program, as_of=as_of),
            prefilter=self._program_prefilter(org),
            limit=limit,
            offset=offset,
            max_reasons=max_reasons,
            locale=locale,
            secondary_key=secondary_key,
            min_score=min_score,
            fingerprint_extra=as_of.isoformat(),
        )

    def score_partner_candidates(
        self,
        org: Union[Organization, dict],
        candidates: Iterable[Union[Organization, dict]],
        limit: Optional[int] = None,
        offset: int = 0,
        max_reasons: Optional[int] = None,
        locale: Optional[str] = None,
        secondary_key: Optional[SecondaryKey] = None,
        min_score: Optional[int] = None,
    ) -> RankingResult:
        """Rank partner candidates for an organization.

        The requesting organization is never recommended as its own partner.

        Args:
            org: The organization looking for partners (model or dict)
            candidates: Candidate organizations (models or dicts)
            limit: Page size (default: assembly.default_limit)
            offset: Number of ranked results to skip
            max_reasons: Cap on reasons per explanation
            locale: Explanation locale
            secondary_key: Tie-breaker for equal scores (default: partner id)
            min_score: Drop results scoring below this (default: assembly.min_score)

        Returns:
            RankingResult with the requested page of explained partner scores
        """
        org = _coerce_organization(org)

        return self._rank(
            kind=TargetKind.PARTNER,
            org=org,
            candidates=list(candidates),
            model=Organization,
            score_one=lambda partner: self.partner_scorer.score(org, partner),
            prefilter=self._partner_prefilter(org),
            limit=limit,
            offset=offset,
            max_reasons=max_reasons,
            locale=locale,
            secondary_key=secondary_key,
            min_score=min_score,
            exclude_id=org.id,
        )

    def invalidate(self, organization_id: str) -> None:
        """Drop cached rankings for an organization (e.g. after a profile update)."""
        if self.cache is not None:
            removed = self.cache.invalidate(organization_id)
            logger.debug("Invalidated %d cached rankings for %s", removed, organization_id)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _rank(
        self,
        kind: TargetKind,
        org: Organization,
        candidates: list,
        model: type[BaseModel],
        score_one: Callable[[Any], Score],
        prefilter: Callable[[Any], bool],
        limit: Optional[int],
        offset: int,
        max_reasons: Optional[int],
        locale: Optional[str],
        secondary_key: Optional[SecondaryKey],
        min_score: Optional[int] = None,
        exclude_id: Optional[str] = None,
        fingerprint_extra: str = "",
    ) -> RankingResult:
        locale = self.explainer.resolve_locale(locale)
        if max_reasons is None:
            max_reasons = self.config.explanation.default_max_reasons
        if min_score is None:
            min_score = self.config.assembly.min_score

        # A caller-supplied tie-breaker cannot be part of a cache key
        key = None
        if self.cache is not None and secondary_key is None:
            key = CacheKey(
                kind=kind.value,
                organization_id=org.id,
                taxonomy_version=self.taxonomy.version,
                locale=locale,
                max_reasons=max_reasons,
                fingerprint=_fingerprint(org, candidates, fingerprint_extra),
            )
            ranked = self.cache.get(key)
            if ranked is not None:
                logger.debug("Cache hit for %s rankings of %s", kind.value, org.id)
                return self._page(kind, org, ranked, limit, offset, min_score, cached=True)

        valid, failures = self._validate(candidates, model)

        if exclude_id is not None:
            kept = [c for c in valid if c.id != exclude_id]
            if len(kept) != len(valid):
                logger.debug("Skipped the requesting organization %s as its own candidate", exclude_id)
            valid = kept

        valid = self._apply_ceiling(kind, valid, prefilter)

        scores, scoring_failures = self._score_all(valid, score_one)
        failures.extend(scoring_failures)

        tie_breaker = secondary_key or (lambda s: s.target_id)
        scores = sorted(scores, key=lambda s: (-s.score, tie_breaker(s)))

        explained = [
            self.explainer.explain_result(s, locale=locale, max_reasons=max_reasons)
            for s in scores
        ]

        ranked = _RankedSet(
            results=explained,
            failures=failures,
            total_candidates=len(candidates),
        )
        if key is not None:
            self.cache.set(key, ranked)

        return self._page(kind, org, ranked, limit, offset, min_score, cached=False)

    def _validate(
        self,
        candidates: list,
        model: type[BaseModel],
    ) -> tuple[list, list[CandidateFailure]]:
        """Validate candidates one by one; invalid ones become failures."""
        valid = []
        failures = []
        for raw in candidates:
            if isinstance(raw, model):
                valid.append(raw)
                continue
            try:
                if not isinstance(raw, dict):
                    raise TypeError(f"expected a {model.__name__} or dict, got {type(raw).__name__}")
                valid.append(model.model_validate(raw))
            except (ValidationError, TypeError) as e:
                candidate_id = _candidate_id(raw)
                logger.warning("Skipping invalid candidate %s: %s", candidate_id, _describe(e))
                failures.append(CandidateFailure(candidate_id=candidate_id, error=_describe(e)))
        return valid, failures

    def _apply_ceiling(
        self,
        kind: TargetKind,
        candidates: list,
        prefilter: Callable[[Any], bool],
    ) -> list:
        """Keep the candidate count within assembly.max_candidates."""
        ceiling = self.config.assembly.max_candidates
        if len(candidates) <= ceiling:
            return candidates

        filtered = [c for c in candidates if prefilter(c)]
        logger.info(
            "Pre-filtered %s candidates from %d to %d (ceiling %d)",
            kind.value.lower(), len(candidates), len(filtered), ceiling,
        )
        if len(filtered) > ceiling:
            logger.warning(
                "Truncating %d %s candidates to the ceiling of %d",
                len(filtered), kind.value.lower(), ceiling,
            )
            filtered = filtered[:ceiling]
        return filtered

    def _score_all(
        self,
        candidates: list,
        score_one: Callable[[Any], Score],
    ) -> tuple[list[Score], list[CandidateFailure]]:
        """Score candidates, in parallel for large batches, within the request timeout."""
        cfg = self.config.assembly
        deadline = time.monotonic() + cfg.request_timeout_seconds
        scores: list[Score] = []
        failures: list[CandidateFailure] = []

        def record_failure(candidate, error: Exception) -> None:
            logger.warning("Failed to score candidate %s: %s", candidate.id, error)
            failures.append(CandidateFailure(candidate_id=candidate.id, error=_describe(error)))

        if len(candidates) < cfg.parallel_threshold:
            for candidate in candidates:
                if time.monotonic() > deadline:
                    raise ScoringTimeoutError(
                        f"Scoring exceeded {cfg.request_timeout_seconds}s "
                        f"({len(scores) + len(failures)}/{len(candidates)} candidates scored)"
                    )
                try:
                    scores.append(score_one(candidate))
                except Exception as e:
                    record_failure(candidate, e)
            return scores, failures

        workers = cfg.max_workers or os.cpu_count() or 1
        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            futs = {executor.submit(score_one, c): c for c in candidates}
            try:
                for fut in as_completed(futs, timeout=max(deadline - time.monotonic(), 0)):
                    try:
                        scores.append(fut.result())
                    except Exception as e:
                        record_failure(futs[fut], e)
            except FuturesTimeoutError as e:
                raise ScoringTimeoutError(
                    f"Scoring exceeded {cfg.request_timeout_seconds}s "
                    f"({len(scores) + len(failures)}/{len(candidates)} candidates scored)"
                ) from e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return scores, failures

    def _page(
        self,
        kind: TargetKind,
        org: Organization,
        ranked: _RankedSet,
        limit: Optional[int],
        offset: int,
        min_score: Optional[int],
        cached: bool,
    ) -> RankingResult:
        limit = limit if limit is not None else self.config.assembly.default_limit
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
        offset = max(offset, 0)

        # The cached set is unfiltered; the score floor applies per request
        eligible = ranked.results
        if min_score is not None:
            eligible = [r for r in ranked.results if r.score >= min_score]
        page = eligible[offset:offset + limit]

        message = None
        if not ranked.results:
            if ranked.total_candidates == 0:
                message = "No candidates were supplied."
            else:
                message = (
                    f"No eligible matches: none of the {ranked.total_candidates} candidates "
                    f"could be scored ({len(ranked.failures)} failed)."
                )
        elif not eligible:
            message = (
                f"No eligible matches: none of the {len(ranked.results)} scored candidates "
                f"reached the minimum score of {min_score}."
            )

        return RankingResult(
            organization_id=org.id,
            kind=kind,
            results=page,
            failures=ranked.failures,
            total_candidates=ranked.total_candidates,
            scored_count=len(ranked.results),
            below_min_score=len(ranked.results) - len(eligible),
            offset=offset,
            limit=limit,
            min_score=min_score,
            cached=cached,
            taxonomy_version=self.taxonomy.version,
            no_eligible_matches=not eligible,
            message=message,
        )

    # -------------------------------------------------------------------------
    # Pre-filters (only used above the candidate ceiling)
    # -------------------------------------------------------------------------

    def _program_prefilter(self, org: Organization) -> Callable[[Program], bool]:
        org_sector = self.taxonomy.organization_sector(org)
        threshold = self.config.assembly.prefilter_min_relevance

        def keep(program: Program) -> bool:
            if program.target_types and org.kind not in program.target_types:
                return False
            if org_sector is None:
                return True
            program_sector = self.taxonomy.detect_program_sector(program)
            return self.taxonomy.relevance(org_sector, program_sector) >= threshold

        return keep

    def _partner_prefilter(self, org: Organization) -> Callable[[Organization], bool]:
        org_sector = self.taxonomy.organization_sector(org)
        threshold = self.config.assembly.prefilter_min_relevance

        def keep(partner: Organization) -> bool:
            if org_sector is None:
                return True
            partner_sector = self.taxonomy.organization_sector(partner)
            return self.taxonomy.relevance(org_sector, partner_sector) >= threshold

        return keep


# =============================================================================
# Helpers
# =============================================================================


def _coerce_organization(org: Union[Organization, dict]) -> Organization:
    if isinstance(org, Organization):
        return org
    return Organization.model_validate(org)


def _candidate_id(raw: Any) -> Optional[str]:
    if isinstance(raw, BaseModel):
        value = getattr(raw, "id", None)
    elif isinstance(raw, dict):
        value = raw.get("id")
    else:
        value = None
    return str(value) if value not in (None, "") else None


def _fingerprint(org: Organization, candidates: list, extra: str = "") -> str:
    """Digest of the requesting profile, every candidate's content (in order)
    and request-specific context, so an edited record never hits a stale entry.
    """
    digest = hashlib.sha256(extra.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(org.model_dump_json().encode("utf-8"))
    for raw in candidates:
        digest.update(b"\x00")
        digest.update(_content(raw).encode("utf-8"))
    return digest.hexdigest()[:32]


def _content(raw: Any) -> str:
    if isinstance(raw, BaseModel):
        return raw.model_dump_json()
    if isinstance(raw, dict):
        return json.dumps(raw, sort_keys=True, ensure_ascii=False, default=str)
    return repr(raw)


def _describe(error: Exception) -> str:
    if isinstance(error, ValidationError):
        first = error.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "record"
        return f"{error.error_count()} validation error(s); {location}: {first.get('msg', '')}"
    return f"{type(error).__name__}: {error}"


# =============================================================================
# Validation (used by the CLI)
# =============================================================================


def validate_taxonomy(path: Optional[Union[str, Path]] = None) -> tuple[bool, list[str]]:
    """Validate a taxonomy file.

    Returns:
        (is_valid, list of issues)
    """
    issues = []
    try:
        taxonomy = load_taxonomy(Path(path) if path else None)
    except TaxonomyError as e:
        return False, [str(e)]
    except (OSError, ValueError) as e:
        return False, [f"Failed to load taxonomy: {e}"]

    for sector_id in taxonomy.sector_ids:
        if not taxonomy.keywords_for_sector(sector_id):
            issues.append(f"Sector {sector_id} has no keywords")
        for other in taxonomy.sector_ids:
            if taxonomy.relevance(sector_id, other) != taxonomy.relevance(other, sector_id):
                issues.append(f"Relevance is not symmetric for {sector_id}/{other}")

    return len(issues) == 0, issues


def validate_locales(directory: Optional[Union[str, Path]] = None) -> tuple[bool, list[str]]:
    """Run the explanation template self-check over a locale directory.

    Returns:
        (is_valid, list of issues)
    """
    locales = discover_locales(Path(directory)) if directory else None
    if locales is not None and not locales:
        return False, [f"No locale files found in {directory}"]
    try:
        ExplanationGenerator(locales=locales)
    except TemplateRegistryError as e:
        return False, [str(e)]
    return True, []


def validate_profiles(path: Union[str, Path], kind: TargetKind) -> tuple[bool, list[str]]:
    """Validate a JSON file of programs or organizations record by record.

    Returns:
        (is_valid, list of issues)
    """
    model = Program if kind == TargetKind.PROGRAM else Organization
    issues = []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        return False, [f"Failed to read {path}: {e}"]

    records = data if isinstance(data, list) else [data]
    for i, record in enumerate(records):
        try:
            model.model_validate(record)
        except ValidationError as e:
            issues.append(f"Record {i} ({_candidate_id(record) or 'no id'}): {_describe(e)}")

    return len(issues) == 0, issues

