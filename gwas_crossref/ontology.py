"""
Trait ontology (EFO) access through obonet and networkx.

obonet reads an OBO file into a networkx MultiDiGraph whose edges point from
a term to its parents, so the more specific terms below a node are its
networkx *ancestors* and the more general ones its *descendants*. The
methods here use the ontology meaning of those words.
"""

import re
from pathlib import Path
from typing import Iterable, List, Set, Union

import networkx as nx
import obonet
import pandas as pd
import structlog

from .catalog import GwasCatalog, MAPPED_TRAIT_URI
from .errors import SourceNotFoundError, UnknownTermError

logger = structlog.get_logger(__name__)

_URI_TAIL = re.compile(r"/(?P<prefix>[A-Za-z]+)_(?P<local>[A-Za-z0-9]+)$")


def uri_to_curie(uri: str) -> str:
    """http://www.ebi.ac.uk/efo/EFO_0000270 -> EFO:0000270 (CURIEs pass through)."""
    uri = str(uri).strip()
    match = _URI_TAIL.search(uri)
    if match:
        return f"{match.group('prefix')}:{match.group('local')}"
    return uri


def curie_to_uri(curie: str) -> str:
    """EFO:0000270 -> http://www.ebi.ac.uk/efo/EFO_0000270 (OBO library for other prefixes)."""
    prefix, _, local = str(curie).partition(":")
    if not local:
        return curie
    if prefix == "EFO":
        return f"http://www.ebi.ac.uk/efo/EFO_{local}"
    if prefix == "Orphanet":
        return f"http://www.orpha.net/ORDO/Orphanet_{local}"
    return f"http://purl.obolibrary.org/obo/{prefix}_{local}"


def load_ontology(path: Union[str, Path]) -> "TraitOntology":
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(f"Ontology not found at {path}")
    graph = obonet.read_obo(str(path))
    logger.debug("Loaded ontology", path=str(path), terms=graph.number_of_nodes())
    return TraitOntology(graph)


class TraitOntology:
    """Navigation over an is_a hierarchy of trait terms."""

    def __init__(self, graph: nx.MultiDiGraph):
        self.graph = graph
        self._is_a = nx.DiGraph(
            [(child, parent) for child, parent, key in graph.edges(keys=True) if key == "is_a"]
        )
        self._is_a.add_nodes_from(graph.nodes)

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, term: str) -> bool:
        return uri_to_curie(term) in self.graph

    def _term(self, term: str) -> str:
        curie = uri_to_curie(term)
        if curie not in self.graph:
            raise UnknownTermError(curie)
        return curie

    def name(self, term: str) -> str:
        return self.graph.nodes[self._term(term)].get("name", "")

    def find_terms(self, pattern: str) -> pd.DataFrame:
        """Terms whose name matches a case-insensitive regular expression."""
        regex = re.compile(pattern, re.IGNORECASE)
        rows = [(node, data.get("name", "")) for node, data in self.graph.nodes(data=True)
                if regex.search(data.get("name", ""))]
        frame = pd.DataFrame(rows, columns=["term", "name"])
        return frame.sort_values("term").reset_index(drop=True)

    def parents(self, term: str) -> List[str]:
        return sorted(self._is_a.successors(self._term(term)))

    def children(self, term: str) -> List[str]:
        return sorted(self._is_a.predecessors(self._term(term)))

    def descendants(self, term: str) -> Set[str]:
        """All terms more specific than ``term`` (not including it)."""
        return set(nx.ancestors(self._is_a, self._term(term)))

    def ancestors(self, term: str) -> Set[str]:
        """All terms more general than ``term`` (not including it)."""
        return set(nx.descendants(self._is_a, self._term(term)))

    def term_table(self, terms: Iterable[str]) -> pd.DataFrame:
        rows = [(t, self.graph.nodes[t].get("name", "")) for t in sorted(terms) if t in self.graph]
        return pd.DataFrame(rows, columns=["term", "name"])

    def subset_catalog(
        self,
        catalog: GwasCatalog,
        term: str,
        include_descendants: bool = True
    ) -> GwasCatalog:
        """
        Associations mapped to ``term`` (and, by default, any term below it).

        MAPPED_TRAIT_URI may list several comma-separated URIs; a row matches
        when any of them is in the wanted set.
        """
        wanted = {self._term(term)}
        if include_descendants:
            wanted |= self.descendants(term)

        def matches(value) -> bool:
            if not isinstance(value, str):
                return False
            return any(uri_to_curie(u) in wanted for u in value.split(",") if u.strip())

        mask = catalog.frame[MAPPED_TRAIT_URI].map(matches).to_numpy(dtype=bool)
        logger.debug("Ontology subset", term=term, terms=len(wanted), hits=int(mask.sum()))
        return catalog._derive(mask)
