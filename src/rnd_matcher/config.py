"""Centralized configuration management for the R&D matcher."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator


class ExplanationConfig(BaseModel):
    """Explanation language and summary tier thresholds.

    A score at or above a threshold falls into that tier; anything below
    review_threshold is shown for reference only.
    """
    default_locale: str = Field(
        "ko",
        description="Locale used when none is requested or the requested one is unknown"
    )
    strongly_recommended_threshold: int = Field(
        80, ge=0, le=100,
        description="Minimum score for a 'strongly recommended' summary"
    )
    recommended_threshold: int = Field(
        60, ge=0, le=100,
        description="Minimum score for a 'recommended' summary"
    )
    review_threshold: int = Field(
        40, ge=0, le=100,
        description="Minimum score for a 'review needed' summary"
    )
    default_max_reasons: Optional[int] = Field(
        None, ge=0,
        description="Default cap on reasons per explanation (null = no cap)"
    )

    @model_validator(mode="after")
    def check_order(self) -> "ExplanationConfig":
        if not (self.strongly_recommended_threshold >= self.recommended_threshold >= self.review_threshold):
            raise ValueError("thresholds must satisfy strongly_recommended >= recommended >= review")
        return self


class AssemblyConfig(BaseModel):
    """Candidate limits, concurrency and pagination for ranking requests."""
    max_candidates: int = Field(
        3000, ge=1,
        description="Candidates above this count are pre-filtered, then truncated"
    )
    prefilter_min_relevance: float = Field(
        0.4, ge=0.0, le=1.0,
        description="Minimum sector relevance a candidate needs to survive the pre-filter"
    )
    max_workers: Optional[int] = Field(
        None, ge=1,
        description="Scoring threads (null = CPU count)"
    )
    parallel_threshold: int = Field(
        64, ge=1,
        description="Batches smaller than this are scored inline"
    )
    request_timeout_seconds: float = Field(
        30.0, gt=0,
        description="Upper bound on scoring time for one ranking request"
    )
    default_limit: int = Field(
        20, ge=1,
        description="Page size when the caller does not pass a limit"
    )
    min_score: Optional[int] = Field(
        None, ge=0, le=100,
        description="Results scoring below this are dropped (null = keep all)"
    )


class CacheConfig(BaseModel):
    """In-memory cache of ranked results per organization."""
    enabled: bool = Field(True, description="Cache ranked results")
    ttl_seconds: int = Field(86400, ge=1, description="Time-to-live of a cached result")
    max_entries: int = Field(1024, ge=1, description="Oldest entries are evicted beyond this count")


class MatcherConfig(BaseModel):
    """Complete configuration for the R&D matcher."""
    explanation: ExplanationConfig = Field(default_factory=ExplanationConfig)
    assembly: AssemblyConfig = Field(default_factory=AssemblyConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    taxonomy_path: Optional[str] = Field(
        None,
        description="Path to a taxonomy YAML file (null = bundled taxonomy)"
    )


# Global config instance
_config: Optional[MatcherConfig] = None


def get_config() -> MatcherConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    """
    global _config
    if _config is None:
        _config = MatcherConfig()
    return _config


def load_config(path: Path) -> MatcherConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded MatcherConfig.
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = MatcherConfig.model_validate(data or {})
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = MatcherConfig()


def find_config_file() -> Optional[Path]:
    """Find a matcher configuration file.

    Looks in (order of priority):
    1. RND_MATCHER_CONFIG environment variable
    2. ./matcher-config.yaml
    3. ./matcher-config.yml
    4. ~/.config/rnd-matcher/config.yaml
    """
    # Environment variable
    env_path = os.environ.get("RND_MATCHER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    # Current directory
    for name in ["matcher-config.yaml", "matcher-config.yml"]:
        path = Path(name)
        if path.exists():
            return path

    # User config directory
    user_config = Path.home() / ".config" / "rnd-matcher" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    config = MatcherConfig()
    data = config.model_dump()

    yaml_content = """# R&D Matcher Configuration
# =========================
#
# This file configures explanation tiers, candidate limits, concurrency
# and result caching.
#
# Copy this file to one of these locations:
#   - ./matcher-config.yaml (current directory)
#   - ~/.config/rnd-matcher/config.yaml (user config)
#
# Or set the RND_MATCHER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)
