"""
Tests for EFO navigation and ontology-driven catalog subsets.
"""

import pytest

from gwas_crossref.catalog import TRAIT
from gwas_crossref.errors import SourceNotFoundError, UnknownTermError
from gwas_crossref.ontology import curie_to_uri, load_ontology, uri_to_curie


@pytest.fixture
def efo(obo_path):
    return load_ontology(obo_path)


class TestIdentifiers:
    """Test URI and CURIE conversion."""

    def test_uri_to_curie(self):
        assert uri_to_curie("http://www.ebi.ac.uk/efo/EFO_0000384") == "EFO:0000384"
        assert uri_to_curie(" http://purl.obolibrary.org/obo/MONDO_0005011") == "MONDO:0005011"
        assert uri_to_curie("EFO:0000384") == "EFO:0000384"

    def test_curie_to_uri(self):
        assert curie_to_uri("EFO:0000384") == "http://www.ebi.ac.uk/efo/EFO_0000384"
        assert curie_to_uri("HP:0000118") == "http://purl.obolibrary.org/obo/HP_0000118"
        assert curie_to_uri("Orphanet:1234") == "http://www.orpha.net/ORDO/Orphanet_1234"
        assert curie_to_uri("plain") == "plain"


class TestTraitOntology:
    """Test hierarchy navigation."""

    def test_load(self, efo):
        assert len(efo) == 5
        assert "EFO:0000384" in efo
        assert "http://www.ebi.ac.uk/efo/EFO_0000729" in efo

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceNotFoundError):
            load_ontology(tmp_path / "efo.obo")

    def test_name(self, efo):
        assert efo.name("EFO:0003767") == "inflammatory bowel disease"

    def test_unknown_term(self, efo):
        with pytest.raises(UnknownTermError) as excinfo:
            efo.name("EFO:9999999")
        assert "EFO:9999999" in str(excinfo.value)

    def test_parents_and_children(self, efo):
        assert efo.parents("EFO:0000384") == ["EFO:0003767"]
        assert efo.children("EFO:0003767") == ["EFO:0000384", "EFO:0000729"]
        assert efo.parents("EFO:0000405") == []

    def test_descendants_are_more_specific(self, efo):
        assert efo.descendants("EFO:0000405") == {"EFO:0003767", "EFO:0000384", "EFO:0000729"}
        assert efo.descendants("EFO:0000384") == set()

    def test_ancestors_are_more_general(self, efo):
        assert efo.ancestors("EFO:0000729") == {"EFO:0003767", "EFO:0000405"}

    def test_find_terms(self, efo):
        found = efo.find_terms("bowel|crohn")
        assert list(found["term"]) == ["EFO:0000384", "EFO:0003767"]

    def test_term_table_skips_unknown(self, efo):
        table = efo.term_table(["EFO:0004339", "EFO:1"])
        assert table.to_dict("records") == [{"term": "EFO:0004339", "name": "body height"}]


class TestSubsetCatalog:
    """Test selecting associations through the hierarchy."""

    def test_term_with_descendants(self, efo, catalog):
        subset = efo.subset_catalog(catalog, "EFO:0003767")
        assert set(subset.frame[TRAIT]) == {
            "Crohn's disease", "Ulcerative colitis", "Inflammatory bowel disease"
        }
        assert len(subset) == 4

    def test_term_only(self, efo, catalog):
        subset = efo.subset_catalog(catalog, "EFO:0003767", include_descendants=False)
        assert list(subset.snp_ids()) == ["rs8"]

    def test_any_listed_uri_matches(self, efo, catalog):
        """A row annotated with several terms matches through its second URI."""
        subset = efo.subset_catalog(catalog, "EFO:0000405", include_descendants=False)
        assert list(subset.snp_ids()) == ["rs8"]

    def test_leaf_term_by_uri(self, efo, catalog):
        subset = efo.subset_catalog(catalog, "http://www.ebi.ac.uk/efo/EFO_0004339")
        assert subset.snp_ids() == ["rs4"]
