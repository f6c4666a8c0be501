"""Exact identity of mesh nodes proposed by different elements."""

from __future__ import annotations

from fractions import Fraction
from typing import Sequence


class NodeKey:
    """Canonical identity of a node, as seen from one element.

    A node of a Lagrange element is an affine combination of the element's
    vertices. The key keeps only the vertices with a nonzero affine weight,
    ordered by global vertex index, together with their exact weights. Two
    elements that propose the same geometric node therefore produce equal
    keys, whatever their local vertex numbering.

    Parameters
    ----------
    cell_vertices : sequence of int
        Global indices of the element's affine base vertices.
    sort_order : sequence of int
        Permutation of local vertex slots sorting ``cell_vertices`` ascending.
    weights : sequence of Fraction
        Exact affine weights of the node, indexed by local vertex slot.

    Notes
    -----
    Zero weights are detected with exact rational comparison. Keys order by
    number of nonzero weights, then by vertex indices, then by weights.

    Examples
    --------
    >>> from fractions import Fraction
    >>> a = NodeKey([4, 7, 2], [2, 0, 1], [Fraction(1, 2), Fraction(1, 2), 0])
    >>> b = NodeKey([7, 4, 9], [1, 0, 2], [Fraction(1, 2), Fraction(1, 2), 0])
    >>> a == b
    True
    """

    __slots__ = ("vertices", "weights")

    def __init__(
        self,
        cell_vertices: Sequence[int],
        sort_order: Sequence[int],
        weights: Sequence[Fraction],
    ):
        nonzero = [slot for slot in sort_order if weights[slot] != 0]
        self.vertices = tuple(int(cell_vertices[slot]) for slot in nonzero)
        self.weights = tuple(Fraction(weights[slot]) for slot in nonzero)

    @property
    def size(self) -> int:
        """Number of vertices with a nonzero affine weight."""
        return len(self.vertices)

    def _astuple(self):
        return (self.size, self.vertices, self.weights)

    def __eq__(self, other) -> bool:
        if not isinstance(other, NodeKey):
            return NotImplemented
        return self._astuple() == other._astuple()

    def __lt__(self, other) -> bool:
        if not isinstance(other, NodeKey):
            return NotImplemented
        return self._astuple() < other._astuple()

    def __hash__(self) -> int:
        return hash(self._astuple())

    def __repr__(self) -> str:
        weights = ", ".join(str(w) for w in self.weights)
        return f"NodeKey(vertices={self.vertices}, weights=({weights}))"
