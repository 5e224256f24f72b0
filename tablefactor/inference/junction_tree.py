"""
tablefactor/inference/junction_tree.py

Exact sum-product calibration on a junction tree of table factors.

The tree over the given cliques is a maximum spanning tree of the clique
graph, each edge weighted by the number of variables its separator holds.
When the cliques satisfy the running intersection property this tree is a
junction tree.

Calibration is two passes over the tree rooted at clique 0:
  - collect: leaves to root, m_{i->p} = sum_{C_i - S} psi_i * prod_c m_{c->i}
  - distribute: root to leaves, m_{p->i} = sum_{C_p - S} belief_p / m_{i->p}
After both passes belief_i = psi_i * prod_n m_{n->i} is the unnormalized
marginal of the model on clique i.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx

from tablefactor.algebra.operators import Op
from tablefactor.algebra.semiring import DEFAULT_SEMIRING, Semiring
from tablefactor.core.logging import get_logger
from tablefactor.core.universe import Domain, Variable, ordered
from tablefactor.errors import InvalidArgumentError
from tablefactor.factor.table_factor import TableFactor

logger = get_logger(__name__)


def build_clique_tree(cliques: Sequence[Domain]) -> nx.Graph:
    """
    Maximum spanning tree of the clique graph.

    Every pair of cliques is a candidate edge weighted by its separator
    size, so the result is connected even across empty separators.
    """
    G = nx.Graph()
    G.add_nodes_from(range(len(cliques)))
    for i in range(len(cliques)):
        for j in range(i + 1, len(cliques)):
            sep = cliques[i] & cliques[j]
            G.add_edge(i, j, weight=len(sep), separator=sep)
    return nx.maximum_spanning_tree(G, weight="weight")


def root_tree(tree: nx.Graph, root: int) -> Tuple[Dict[int, Optional[int]], List[int]]:
    """
    Root a tree at a given node.

    Returns:
        (parent, order) where parent[node] is the parent (None for root)
        and order lists nodes so that every parent precedes its children
    """
    parent: Dict[int, Optional[int]] = {root: None}
    order: List[int] = []
    stack = [root]
    while stack:
        u = stack.pop()
        order.append(u)
        for v in tree.neighbors(u):
            if v in parent:
                continue
            parent[v] = u
            stack.append(v)
    return parent, order


class JunctionTree:
    """
    Junction tree over table factors.

    Args:
        cliques: Clique domains (assumed to satisfy running intersection)
        factors: Factors, each covered by at least one clique
        semiring: Weight space of the clique potentials (defaults to the
                  weight space of the first factor)
    """

    def __init__(
        self,
        cliques: Iterable[Iterable[Variable]],
        factors: Iterable[TableFactor],
        semiring: Optional[Semiring] = None,
    ):
        self.cliques: List[Domain] = [frozenset(c) for c in cliques]
        if not self.cliques:
            raise InvalidArgumentError("JunctionTree needs at least one clique")
        factors = list(factors)
        if semiring is None:
            semiring = factors[0].semiring if factors else DEFAULT_SEMIRING
        self.semiring = semiring

        self.tree = build_clique_tree(self.cliques)
        self.potentials: List[TableFactor] = [
            TableFactor(ordered(c), semiring.one, semiring) for c in self.cliques
        ]
        for f in factors:
            i = self._covering_clique(f.domain)
            if i is None:
                names = sorted(v.name for v in f.domain)
                raise InvalidArgumentError(f"no clique covers factor arguments {names}")
            self.potentials[i].combine_in(f.in_space(semiring), Op.PRODUCT)

        self._messages: Dict[Tuple[int, int], TableFactor] = {}
        self._beliefs: Optional[List[TableFactor]] = None

    def _covering_clique(self, domain: Domain) -> Optional[int]:
        """Smallest clique containing domain, or None."""
        best = None
        for i, c in enumerate(self.cliques):
            if domain <= c and (best is None or len(c) < len(self.cliques[best])):
                best = i
        return best

    def separator(self, i: int, j: int) -> Domain:
        return self.cliques[i] & self.cliques[j]

    def _incoming(self, i: int, exclude: Optional[int] = None) -> TableFactor:
        result = self.potentials[i].copy()
        for n in self.tree.neighbors(i):
            if n != exclude:
                result.combine_in(self._messages[(n, i)], Op.PRODUCT)
        return result

    def calibrate(self) -> "JunctionTree":
        """Run the collect and distribute passes."""
        parent, order = root_tree(self.tree, 0)
        self._messages = {}

        logger.debug("junction tree: collect pass over %d cliques", len(order))
        for i in reversed(order):
            p = parent[i]
            if p is not None:
                self._messages[(i, p)] = self._incoming(i, exclude=p).marginal(self.separator(i, p))

        beliefs: List[Optional[TableFactor]] = [None] * len(self.cliques)
        logger.debug("junction tree: distribute pass")
        for i in order:
            p = parent[i]
            if p is not None:
                msg = TableFactor.combine(beliefs[p], self._messages[(i, p)], Op.DIVIDES)
                self._messages[(p, i)] = msg.marginal(self.separator(i, p))
            beliefs[i] = self._incoming(i)

        self._beliefs = beliefs
        return self

    @property
    def calibrated(self) -> bool:
        return self._beliefs is not None

    def _clique_index(self, clique: Union[int, Iterable[Variable]]) -> int:
        if isinstance(clique, int):
            return clique
        domain = frozenset(clique)
        try:
            return self.cliques.index(domain)
        except ValueError:
            raise KeyError(f"{sorted(v.name for v in domain)} is not a clique of this tree") from None

    def belief(self, clique: Union[int, Iterable[Variable]]) -> TableFactor:
        """Unnormalized marginal on a clique (by index or domain)."""
        if self._beliefs is None:
            self.calibrate()
        return self._beliefs[self._clique_index(clique)].copy()

    def marginal(self, domain: Iterable[Variable]) -> TableFactor:
        """
        Normalized marginal over a domain covered by one clique.

        Raises:
            InvalidArgumentError: no clique covers the domain
        """
        domain = frozenset(domain)
        i = self._covering_clique(domain)
        if i is None:
            raise InvalidArgumentError(f"no clique covers {sorted(v.name for v in domain)}")
        return self.belief(i).marginal(domain).normalize()

    def partition_function(self) -> float:
        """Sum of the product of all factors over every assignment."""
        return self.belief(0).norm_constant()
