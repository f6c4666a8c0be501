"""Lagrange reference elements."""

from __future__ import annotations

import itertools
from fractions import Fraction
from functools import lru_cache
from typing import Sequence

import torch
from torch import Tensor

from torchfe.finite_element_method._exceptions import ShapeMismatchError
from torchfe.finite_element_method._quadrature import quadrature_points

_ELEMENT_DIM = {
    "line": 1,
    "triangle": 2,
    "quadrilateral": 2,
    "tetrahedron": 3,
    "hexahedron": 3,
}

_SIMPLICES = ("line", "triangle", "tetrahedron")

_ALIASES = {
    "quad": "quadrilateral",
}

_MAX_ORDER = 3


def _normalize_element_type(element_type: str) -> str:
    element_type_lower = element_type.lower()
    element_type_lower = _ALIASES.get(element_type_lower, element_type_lower)
    if element_type_lower not in _ELEMENT_DIM:
        available = list(_ELEMENT_DIM.keys())
        raise ValueError(
            f"Unknown element type '{element_type}'. Available types: {available}"
        )
    return element_type_lower


def _lattice(element_type: str, order: int) -> list[tuple[int, ...]]:
    """Integer node coordinates, first coordinate varying fastest."""
    dims = _ELEMENT_DIM[element_type]
    lattice = []
    for reversed_coordinates in itertools.product(
        range(order + 1), repeat=dims
    ):
        if element_type in _SIMPLICES and sum(reversed_coordinates) > order:
            continue
        lattice.append(tuple(reversed(reversed_coordinates)))
    return lattice


def _simplex_factors(
    node: tuple[int, ...], order: int
) -> list[tuple[Fraction, ...]]:
    """Linear factors of a simplex Lagrange basis function.

    With barycentric coordinates L0 = 1 - sum(xi) and Li = xi[i-1], the basis
    function of the node with lattice coordinates a is
    prod_i prod_{k < a_i} (order * Li - k) / (k + 1).
    """
    dims = len(node)
    factors = []
    for k in range(order - sum(node)):
        factors.append(
            (Fraction(order - k, k + 1),)
            + (Fraction(-order, k + 1),) * dims
        )
    for i, a in enumerate(node):
        for k in range(a):
            slopes = [Fraction(0)] * dims
            slopes[i] = Fraction(order, k + 1)
            factors.append((Fraction(-k, k + 1), *slopes))
    return factors


def _box_factors(
    node: tuple[int, ...], order: int
) -> list[tuple[Fraction, ...]]:
    """Linear factors of a tensor product Lagrange basis function on [0, 1]^d."""
    dims = len(node)
    factors = []
    for i, a in enumerate(node):
        for m in range(order + 1):
            if m == a:
                continue
            slopes = [Fraction(0)] * dims
            slopes[i] = Fraction(order, a - m)
            factors.append((Fraction(-m, a - m), *slopes))
    return factors


class LagrangeElement:
    """Lagrange finite element on a reference domain.

    Every shape function is a product of the same number of linear factors
    ``c0 + c . xi`` with rational coefficients. The factors are evaluated on
    tensors for numerical work and on ``Fraction`` values for exact work.

    Parameters
    ----------
    element_type : str
        Element type: "line", "triangle", "quadrilateral" (or "quad"),
        "tetrahedron", "hexahedron".
    order : int
        Polynomial order, 1 to 3.

    Attributes
    ----------
    element_type : str
        Normalized element type.
    order : int
        Polynomial order.
    dims : int
        Dimension of the reference domain.
    coordinates : tuple of tuple of int
        Integer node coordinates; node ``i`` sits at ``coordinates[i] / order``.

    Notes
    -----
    Reference domains:
        - line: [0, 1]
        - triangle: vertices (0,0), (1,0), (0,1)
        - quadrilateral: [0, 1]^2
        - tetrahedron: vertices (0,0,0), (1,0,0), (0,1,0), (0,0,1)
        - hexahedron: [0, 1]^3

    Nodes are ordered on their lattice with the first coordinate varying
    fastest, so that the vertices of a P1 triangle are (0,0), (1,0), (0,1)
    and the vertices of a Q1 quadrilateral are (0,0), (1,0), (0,1), (1,1).

    Examples
    --------
    >>> element = LagrangeElement("triangle", 2)
    >>> element.num_nodes
    6
    >>> element.vertices
    (0, 2, 5)
    """

    def __init__(self, element_type: str, order: int):
        element_type = _normalize_element_type(element_type)
        if order < 1 or order > _MAX_ORDER:
            raise ValueError(
                f"Order {order} not supported for {element_type}. "
                f"Use order 1 to {_MAX_ORDER}."
            )
        self.element_type = element_type
        self.order = order
        self.dims = _ELEMENT_DIM[element_type]
        self.coordinates = tuple(_lattice(element_type, order))

        if self.is_simplex:
            factors = [_simplex_factors(a, order) for a in self.coordinates]
        else:
            factors = [_box_factors(a, order) for a in self.coordinates]
        self._factors = factors
        self._cache: dict = {}

    def __repr__(self) -> str:
        return f"LagrangeElement('{self.element_type}', {self.order})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, LagrangeElement):
            return NotImplemented
        return (self.element_type, self.order) == (
            other.element_type,
            other.order,
        )

    def __hash__(self) -> int:
        return hash((self.element_type, self.order))

    @property
    def num_nodes(self) -> int:
        """Number of nodes (and shape functions)."""
        return len(self.coordinates)

    @property
    def is_simplex(self) -> bool:
        """Whether the reference domain is the unit simplex."""
        return self.element_type in _SIMPLICES

    @property
    def affine_base(self) -> LagrangeElement:
        """Linear element of the same type, spanned by this element's vertices."""
        if self.order == 1:
            return self
        return lagrange_element(self.element_type, 1)

    @property
    def vertices(self) -> tuple[int, ...]:
        """Local indices of the affine base nodes, in affine base order."""
        return tuple(
            self.coordinates.index(tuple(self.order * c for c in vertex))
            for vertex in self.affine_base.coordinates
        )

    @property
    def exact_coordinates(self) -> tuple[tuple[Fraction, ...], ...]:
        """Reference node coordinates as exact fractions."""
        return tuple(
            tuple(Fraction(c, self.order) for c in node)
            for node in self.coordinates
        )

    def node_coordinates(
        self,
        *,
        dtype: torch.dtype | None = None,
        device: torch.device | None = None,
    ) -> Tensor:
        """Reference node coordinates, shape (dims, num_nodes)."""
        if dtype is None:
            dtype = torch.float64
        lattice = torch.tensor(self.coordinates, dtype=dtype, device=device)
        return lattice.T / self.order

    def exact_basis(self, xi: Sequence[Fraction]) -> list[Fraction]:
        """Evaluate shape functions at one point in exact rational arithmetic.

        Parameters
        ----------
        xi : sequence of Fraction
            Reference coordinates, length ``dims``.

        Returns
        -------
        list of Fraction
            Shape function values, length ``num_nodes``.
        """
        values = []
        for factors in self._factors:
            value = Fraction(1)
            for c0, *slopes in factors:
                value *= c0 + sum(c * x for c, x in zip(slopes, xi))
            values.append(value)
        return values

    def _coefficients(self, dtype: torch.dtype, device: torch.device) -> Tensor:
        """Cached factor coefficients, shape (num_nodes, num_factors, dims + 1)."""
        key = (str(dtype), str(device))
        if key not in self._cache:
            self._cache[key] = torch.tensor(
                [[[float(c) for c in f] for f in fs] for fs in self._factors],
                dtype=dtype,
                device=device,
            )
        return self._cache[key]

    def _factor_values(self, points: Tensor) -> tuple[Tensor, Tensor]:
        """Factor coefficients and values, integer points promoted to float64."""
        if points.dim() != 2 or points.shape[0] != self.dims:
            actual = points.shape[0] if points.dim() == 2 else None
            raise ShapeMismatchError(
                f"Expected evaluation points in d={self.dims} dimensions, "
                f"but got points of shape {tuple(points.shape)}",
                expected=self.dims,
                actual=actual,
            )
        if not points.is_floating_point():
            points = points.to(torch.float64)
        coefficients = self._coefficients(points.dtype, points.device)
        # (num_nodes, num_factors, num_points)
        values = coefficients[..., :1] + torch.einsum(
            "nfd,dq->nfq", coefficients[..., 1:], points
        )
        return coefficients, values

    def basis(self, points: Tensor) -> Tensor:
        """Evaluate shape functions.

        Parameters
        ----------
        points : Tensor
            Reference points, shape (dims, num_points). Integer points
            are evaluated in float64.

        Returns
        -------
        Tensor
            Shape function values, shape (num_nodes, num_points).

        Raises
        ------
        ShapeMismatchError
            If ``points.shape[0] != dims``.
        """
        _, values = self._factor_values(points)
        return values.prod(dim=1)

    def basis_gradient(self, points: Tensor) -> Tensor:
        """Evaluate reference-space gradients of the shape functions.

        Parameters
        ----------
        points : Tensor
            Reference points, shape (dims, num_points).

        Returns
        -------
        Tensor
            Gradients, shape (num_points, num_nodes, dims).
            grad[q, i, k] is the k-th partial derivative of the i-th shape
            function at the q-th point.
        """
        coefficients, values = self._factor_values(points)
        num_nodes, num_factors, num_points = values.shape

        # Product of all factors but one, without dividing by the excluded one
        mask = torch.eye(num_factors, device=points.device, dtype=torch.bool)
        others = values.unsqueeze(1).expand(
            num_nodes, num_factors, num_factors, num_points
        )
        others = others.masked_fill(mask.unsqueeze(0).unsqueeze(-1), 1.0)
        partial_products = others.prod(dim=2)  # (num_nodes, num_factors, Q)

        return torch.einsum(
            "nfd,nfq->qnd", coefficients[..., 1:], partial_products
        )

    def quadrature(
        self,
        order: int,
        *,
        dtype: torch.dtype | None = None,
        device: torch.device | None = None,
    ) -> tuple[Tensor, Tensor]:
        """Quadrature rule integrating polynomials of degree ``order`` exactly.

        Returns points of shape (dims, num_points) and weights of shape
        (num_points,).
        """
        return quadrature_points(
            self.element_type, order, dtype=dtype, device=device
        )


@lru_cache(maxsize=None)
def lagrange_element(element_type: str, order: int) -> LagrangeElement:
    """Return the shared :class:`LagrangeElement` for a type and order.

    Examples
    --------
    >>> element = lagrange_element("tetrahedron", 1)
    >>> element.num_nodes
    4
    """
    return LagrangeElement(element_type, order)
