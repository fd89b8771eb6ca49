"""Tests for the industry taxonomy and keyword normalization."""

import pytest

from rnd_matcher.config import get_config
from rnd_matcher.schema import Organization, Program
from rnd_matcher.taxonomy import (
    TaxonomyError,
    get_taxonomy,
    keywords_overlap,
    load_taxonomy,
    normalize,
)


MINIMAL_TAXONOMY = """
version: "test-1"
sectors:
  ALPHA:
    name: 알파
    name_en: Alpha
    keywords: [알파]
  BETA:
    name: 베타
    keywords: [베타]
relevance:
  ALPHA:
    BETA: {value}
"""


def write_taxonomy(tmp_path, text: str):
    path = tmp_path / "taxonomy.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestNormalize:
    """Tests for keyword normalization."""

    def test_removes_whitespace_and_uppercases(self):
        assert normalize("인공 지능") == "인공지능"
        assert normalize(" smart  factory\t") == "SMARTFACTORY"

    def test_is_idempotent(self):
        for text in ["인공 지능", "Big Data", "K-POP", ""]:
            assert normalize(normalize(text)) == normalize(text)

    def test_empty_input(self):
        assert normalize(None) == ""
        assert normalize("   ") == ""


class TestKeywordsOverlap:
    """Tests for substring matching in either direction."""

    def test_exact_and_substring(self):
        assert keywords_overlap("인공지능", "인공지능")
        assert keywords_overlap("인공지능기술", "인공지능")
        assert keywords_overlap("인공지능", "인공지능기술")

    def test_empty_never_matches(self):
        assert not keywords_overlap("", "인공지능")
        assert not keywords_overlap("인공지능", "")

    def test_unrelated(self):
        assert not keywords_overlap("배터리", "로봇")


class TestSectorLookup:
    """Tests for resolving free-text labels to sectors."""

    def test_direct_sector_id(self, taxonomy):
        assert taxonomy.find_sector("ICT") == "ICT"
        assert taxonomy.find_sector("bio_health") == "BIO_HEALTH"

    def test_sector_keyword(self, taxonomy):
        assert taxonomy.find_sector("제조업") == "MANUFACTURING"
        assert taxonomy.find_sector("해양 수산") == "MARINE"

    def test_sub_sector_keyword_resolves_parent(self, taxonomy):
        assert taxonomy.find_sector("딥러닝") == "ICT"
        assert taxonomy.find_sector("배터리") == "ENERGY"

    def test_find_sub_sector(self, taxonomy):
        assert taxonomy.find_sub_sector("딥러닝") == ("ICT", "AI")
        assert taxonomy.find_sub_sector("스마트공장") == ("MANUFACTURING", "SMART_FACTORY")

    def test_miss_returns_none(self, taxonomy):
        assert taxonomy.find_sector("qqq") is None
        assert taxonomy.find_sector("") is None
        assert taxonomy.find_sector(None) is None
        assert taxonomy.find_sub_sector("qqq") is None

    def test_sector_names(self, taxonomy):
        assert taxonomy.sector_name("MANUFACTURING") == "제조업"
        assert taxonomy.sector_name("MANUFACTURING", "en") == "Manufacturing"
        assert taxonomy.sector_name(None) == ""
        assert taxonomy.sector_name("UNKNOWN") == "UNKNOWN"

    def test_keywords_for_sector_include_sub_sectors(self, taxonomy):
        keywords = taxonomy.keywords_for_sector("ICT")
        assert "ICT" in keywords
        assert "딥러닝" in keywords
        assert taxonomy.keywords_for_sector("UNKNOWN") == frozenset()

    def test_technology_domains(self, taxonomy):
        assert "COMMERCIALIZATION" in taxonomy.match_technology_domains("사업화 지원")
        assert taxonomy.match_technology_domains("") == frozenset()


class TestRelevance:
    """Tests for the cross-industry relevance matrix."""

    def test_symmetric(self, taxonomy):
        for a in taxonomy.sector_ids:
            for b in taxonomy.sector_ids:
                assert taxonomy.relevance(a, b) == taxonomy.relevance(b, a)

    def test_reflexive(self, taxonomy):
        for sector_id in taxonomy.sector_ids:
            assert taxonomy.relevance(sector_id, sector_id) == 1.0

    def test_values(self, taxonomy):
        assert taxonomy.relevance("ICT", "MANUFACTURING") == 0.8
        assert taxonomy.relevance("CULTURAL", "ICT") == 0.3
        assert taxonomy.relevance("ENVIRONMENT", "DEFENSE") == 0.0

    def test_missing_sector_is_zero(self, taxonomy):
        assert taxonomy.relevance(None, "ICT") == 0.0
        assert taxonomy.relevance("ICT", "UNKNOWN") == 0.0


class TestKeywordExtraction:
    """Tests for pooling entity text into keyword sets."""

    def test_organization_keywords(self, taxonomy, ict_company):
        keywords = taxonomy.extract_keywords(ict_company)
        assert "ICT" in keywords
        assert normalize("ICT/정보통신") in keywords
        assert {"인공지능", "클라우드"} <= keywords

    def test_program_keywords(self, taxonomy):
        program = Program(
            id="p1",
            title="A 스마트 사업",
            description="AI 기반 스마트팜 플랫폼",
            category="농업",
            keywords=["정밀 농업"],
        )
        keywords = taxonomy.extract_keywords(program)
        assert "스마트" in keywords
        assert "A" not in keywords
        assert "정밀농업" in keywords
        assert "농업" in keywords
        assert "스마트팜" in keywords
        assert "플랫폼" in keywords
        assert "기반" not in keywords

    def test_spacing_and_case_variants_match(self, taxonomy):
        compact = Organization(id="o1", key_technologies=["인공지능", "Ai Chip"])
        spaced = Organization(id="o2", key_technologies=["인공 지능", "AI chip"])
        keywords = taxonomy.extract_keywords(compact)
        assert {"인공지능", "AICHIP"} <= keywords
        assert keywords == taxonomy.extract_keywords(spaced)

    def test_description_prefix_only(self, taxonomy):
        program = Program(id="p1", description="가" * 200 + " 블록체인")
        assert "블록체인" not in taxonomy.extract_keywords(program)

    def test_unsupported_entity(self, taxonomy):
        with pytest.raises(TypeError):
            taxonomy.extract_keywords("ICT")

    def test_detect_program_sector(self, taxonomy):
        assert taxonomy.detect_program_sector(Program(id="p", category="ICT")) == "ICT"
        assert taxonomy.detect_program_sector(Program(id="p", keywords=["배터리"])) == "ENERGY"
        assert taxonomy.detect_program_sector(
            Program(id="p", title="스마트공장 고도화 지원")
        ) == "MANUFACTURING"
        assert taxonomy.detect_program_sector(Program(id="p", title="qqq")) is None

    def test_organization_sector(self, taxonomy):
        assert taxonomy.organization_sector(Organization(id="o", industry_sector="제조")) == "MANUFACTURING"
        assert taxonomy.organization_sector(Organization(id="o")) is None


class TestLoading:
    """Tests for loading and validating taxonomy files."""

    def test_bundled_taxonomy(self, taxonomy):
        assert taxonomy.version
        assert len(taxonomy.sector_ids) == 12
        assert "OTHER" in taxonomy.sector_ids

    def test_custom_file(self, tmp_path):
        tax = load_taxonomy(write_taxonomy(tmp_path, MINIMAL_TAXONOMY.format(value=0.6)))
        assert tax.version == "test-1"
        assert tax.relevance("BETA", "ALPHA") == 0.6
        assert tax.sector_name("BETA", "en") == "베타"

    def test_out_of_range_relevance(self, tmp_path):
        with pytest.raises(TaxonomyError, match="outside"):
            load_taxonomy(write_taxonomy(tmp_path, MINIMAL_TAXONOMY.format(value=1.5)))

    def test_unknown_sector_in_relevance(self, tmp_path):
        text = MINIMAL_TAXONOMY.format(value=0.5) + "  GAMMA:\n    ALPHA: 0.5\n"
        with pytest.raises(TaxonomyError, match="GAMMA"):
            load_taxonomy(write_taxonomy(tmp_path, text))

    def test_asymmetric_entries(self, tmp_path):
        text = MINIMAL_TAXONOMY.format(value=0.5) + "  BETA:\n    ALPHA: 0.6\n"
        with pytest.raises(TaxonomyError, match="asymmetric"):
            load_taxonomy(write_taxonomy(tmp_path, text))

    def test_diagonal_must_be_one(self, tmp_path):
        text = MINIMAL_TAXONOMY.format(value=0.5) + "  BETA:\n    BETA: 0.9\n"
        with pytest.raises(TaxonomyError, match="diagonal"):
            load_taxonomy(write_taxonomy(tmp_path, text))

    def test_malformed_file(self, tmp_path):
        with pytest.raises(TaxonomyError):
            load_taxonomy(write_taxonomy(tmp_path, "sectors: []\n"))

    def test_get_taxonomy_honors_config(self, tmp_path):
        path = write_taxonomy(tmp_path, MINIMAL_TAXONOMY.format(value=0.6))
        get_config().taxonomy_path = str(path)
        assert get_taxonomy().version == "test-1"
        assert get_taxonomy() is get_taxonomy()
