"""Quadrature rules for reference finite elements."""

from __future__ import annotations

import itertools

import torch
from torch import Tensor

# Symmetric simplex rules in barycentric form. Each entry is
# (weight, barycentric point); the point expands to all its distinct
# permutations, each carrying the weight. Weights sum to 1 and are scaled
# by the reference measure afterwards.
_TRIANGLE_RULES: dict[int, list[tuple[float, tuple[float, ...]]]] = {
    # Centroid
    1: [(1.0, (1 / 3, 1 / 3, 1 / 3))],
    # Edge midpoints
    2: [(1 / 3, (0.5, 0.5, 0.0))],
    # Strang-Fix
    3: [
        (-27 / 48, (1 / 3, 1 / 3, 1 / 3)),
        (25 / 48, (0.6, 0.2, 0.2)),
    ],
    4: [
        (
            0.109951743655322,
            (0.816847572980459, 0.091576213509771, 0.091576213509771),
        ),
        (
            0.223381589678011,
            (0.108103018168070, 0.445948490915965, 0.445948490915965),
        ),
    ],
    5: [
        (0.225, (1 / 3, 1 / 3, 1 / 3)),
        (
            0.125939180544827,
            (0.797426985353087, 0.101286507323456, 0.101286507323456),
        ),
        (
            0.132394152788506,
            (0.059715871789770, 0.470142064105115, 0.470142064105115),
        ),
    ],
}

_TETRAHEDRON_RULES: dict[int, list[tuple[float, tuple[float, ...]]]] = {
    1: [(1.0, (0.25, 0.25, 0.25, 0.25))],
    2: [
        (
            0.25,
            (
                0.5854101966249685,
                0.1381966011250105,
                0.1381966011250105,
                0.1381966011250105,
            ),
        )
    ],
    # Keast
    3: [
        (-0.8, (0.25, 0.25, 0.25, 0.25)),
        (0.45, (0.5, 1 / 6, 1 / 6, 1 / 6)),
    ],
}


def _gauss_legendre(
    n: int,
    dtype: torch.dtype,
    device: torch.device | None,
) -> tuple[Tensor, Tensor]:
    """Gauss-Legendre nodes and weights on [0, 1].

    Golub-Welsch: the nodes are the eigenvalues of the symmetric tridiagonal
    Jacobi matrix of the Legendre polynomials, the weights come from the first
    components of its eigenvectors. Exact for polynomials of degree 2n-1.
    """
    if n == 1:
        return (
            torch.tensor([0.5], dtype=dtype, device=device),
            torch.tensor([1.0], dtype=dtype, device=device),
        )

    k = torch.arange(1, n, dtype=dtype, device=device)
    off_diagonal = k / torch.sqrt(4 * k**2 - 1)
    jacobi = torch.diag(off_diagonal, diagonal=1) + torch.diag(
        off_diagonal, diagonal=-1
    )
    eigenvalues, eigenvectors = torch.linalg.eigh(jacobi)

    # Map from [-1, 1] (total weight 2) to [0, 1] (total weight 1)
    nodes = (eigenvalues + 1) / 2
    weights = eigenvectors[0, :] ** 2
    return nodes, weights


def _tensor_product(nodes: Tensor, weights: Tensor, dims: int):
    """Tensor product rule, first coordinate varying fastest."""
    grids = torch.meshgrid(*([nodes] * dims), indexing="ij")
    points = torch.stack([g.reshape(-1) for g in reversed(grids)])
    weight_grids = torch.meshgrid(*([weights] * dims), indexing="ij")
    product = torch.stack([w.reshape(-1) for w in weight_grids]).prod(dim=0)
    return points, product


def _symmetric_simplex_rule(
    rule: list[tuple[float, tuple[float, ...]]],
    measure: float,
    dtype: torch.dtype,
    device: torch.device | None,
) -> tuple[Tensor, Tensor]:
    points = []
    weights = []
    for weight, barycentric in rule:
        for permutation in sorted(set(itertools.permutations(barycentric))):
            # Drop L0: Cartesian reference coordinates are (L1, ..., Ld)
            points.append(permutation[1:])
            weights.append(weight)
    points = torch.tensor(points, dtype=dtype, device=device).T
    weights = torch.tensor(weights, dtype=dtype, device=device) * measure
    return points.contiguous(), weights


def _collapsed_simplex_rule(
    order: int,
    dims: int,
    dtype: torch.dtype,
    device: torch.device | None,
) -> tuple[Tensor, Tensor]:
    """Collapsed (Duffy) Gauss-Legendre rule on the unit simplex.

    Maps the unit box onto the simplex with
    xi_1 = u_1, xi_k = u_k * prod_{j<k} (1 - u_j). The Jacobian of the map
    raises the polynomial degree in u_1 by dims - 1, which sets the number of
    points per direction.
    """
    n = (order + dims + 1) // 2
    nodes, weights = _gauss_legendre(n, dtype, device)
    u, w = _tensor_product(nodes, weights, dims)

    points = torch.empty_like(u)
    scale = torch.ones_like(u[0])
    jacobian = torch.ones_like(u[0])
    for k in range(dims):
        points[k] = u[k] * scale
        jacobian = jacobian * scale
        scale = scale * (1 - u[k])
    return points, w * jacobian


def _line_quadrature(order, dtype, device):
    nodes, weights = _gauss_legendre((order + 2) // 2, dtype, device)
    return nodes.unsqueeze(0), weights


def _quadrilateral_quadrature(order, dtype, device):
    nodes, weights = _gauss_legendre((order + 2) // 2, dtype, device)
    return _tensor_product(nodes, weights, 2)


def _hexahedron_quadrature(order, dtype, device):
    nodes, weights = _gauss_legendre((order + 2) // 2, dtype, device)
    return _tensor_product(nodes, weights, 3)


def _triangle_quadrature(order, dtype, device):
    """Triangle with vertices (0,0), (1,0), (0,1), area = 1/2."""
    if order in _TRIANGLE_RULES:
        return _symmetric_simplex_rule(
            _TRIANGLE_RULES[order], 1 / 2, dtype, device
        )
    return _collapsed_simplex_rule(order, 2, dtype, device)


def _tetrahedron_quadrature(order, dtype, device):
    """Tetrahedron with vertices (0,0,0), (1,0,0), (0,1,0), (0,0,1), volume = 1/6."""
    if order in _TETRAHEDRON_RULES:
        return _symmetric_simplex_rule(
            _TETRAHEDRON_RULES[order], 1 / 6, dtype, device
        )
    return _collapsed_simplex_rule(order, 3, dtype, device)


_ELEMENT_QUADRATURE = {
    "line": _line_quadrature,
    "triangle": _triangle_quadrature,
    "quadrilateral": _quadrilateral_quadrature,
    "quad": _quadrilateral_quadrature,
    "tetrahedron": _tetrahedron_quadrature,
    "hexahedron": _hexahedron_quadrature,
}


def quadrature_points(
    element_type: str,
    order: int,
    *,
    dtype: torch.dtype | None = None,
    device: torch.device | None = None,
) -> tuple[Tensor, Tensor]:
    """Get quadrature points and weights for a reference element.

    Parameters
    ----------
    element_type : str
        Element type: "line", "triangle", "quadrilateral" (or "quad"),
        "tetrahedron", or "hexahedron".
    order : int
        Polynomial degree to integrate exactly. Must be >= 1.
    dtype : torch.dtype, optional
        Output dtype. Default is float64.
    device : torch.device, optional
        Output device.

    Returns
    -------
    points : Tensor
        Quadrature points, shape (dim, num_points).
    weights : Tensor
        Quadrature weights, shape (num_points,).

    Notes
    -----
    Reference element definitions:
        - line: [0, 1], length = 1
        - triangle: vertices (0,0), (1,0), (0,1), area = 1/2
        - quadrilateral: [0, 1]^2, area = 1
        - tetrahedron: vertices (0,0,0), (1,0,0), (0,1,0), (0,0,1), volume = 1/6
        - hexahedron: [0, 1]^3, volume = 1

    Symmetric rules are used for triangles up to order 5 and tetrahedra up to
    order 3; higher orders use collapsed Gauss-Legendre rules.

    Examples
    --------
    >>> points, weights = quadrature_points("triangle", order=2)
    >>> points.shape
    torch.Size([2, 3])
    >>> weights.sum()
    tensor(0.5000, dtype=torch.float64)
    """
    if dtype is None:
        dtype = torch.float64

    element_type_lower = element_type.lower()

    if element_type_lower not in _ELEMENT_QUADRATURE:
        available = list(_ELEMENT_QUADRATURE.keys())
        raise ValueError(
            f"Unknown element type '{element_type}'. Available types: {available}"
        )
    if order < 1:
        raise ValueError(f"Quadrature order must be >= 1, got {order}")

    return _ELEMENT_QUADRATURE[element_type_lower](order, dtype, device)
