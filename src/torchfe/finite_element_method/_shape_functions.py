"""Shape function values at reference points and their element integrals."""

from __future__ import annotations

import torch
from torch import Tensor

from torchfe.finite_element_method._element import lagrange_element
from torchfe.finite_element_method._exceptions import ShapeMismatchError
from torchfe.finite_element_method._mesh import Mesh


def shape_functions(
    element_type: str,
    order: int,
    quadrature_order: int,
    *,
    dtype: torch.dtype | None = None,
    device: torch.device | None = None,
) -> Tensor:
    """Shape function values at the element's quadrature points.

    Parameters
    ----------
    element_type : str
        Element type.
    order : int
        Polynomial order of the element.
    quadrature_order : int
        Polynomial degree integrated exactly by the quadrature rule.
    dtype : torch.dtype, optional
        Output dtype. Default is float64.
    device : torch.device, optional
        Output device.

    Returns
    -------
    Tensor
        Shape (num_nodes, num_quad_points). Column ``g`` holds every node's
        shape function at quadrature point ``g``.

    Examples
    --------
    >>> N = shape_functions("triangle", 1, quadrature_order=1)
    >>> N
    tensor([[0.3333],
            [0.3333],
            [0.3333]], dtype=torch.float64)
    """
    element = lagrange_element(element_type, order)
    points, _ = element.quadrature(quadrature_order, dtype=dtype, device=device)
    return element.basis(points)


def shape_functions_at(
    element_type: str,
    order: int,
    points: Tensor,
) -> Tensor:
    """Shape function values at arbitrary reference points.

    Parameters
    ----------
    element_type : str
        Element type.
    order : int
        Polynomial order of the element.
    points : Tensor
        Reference points, shape (dims, num_points).

    Returns
    -------
    Tensor
        Shape (num_nodes, num_points).

    Raises
    ------
    ShapeMismatchError
        If ``points`` is not of shape (dims, num_points) for the element's
        reference dimension ``dims``.

    Notes
    -----
    Points are evaluated independently of one another in a single batched
    evaluation.
    """
    element = lagrange_element(element_type, order)
    return element.basis(points)


def integrated_shape_functions(
    mesh: Mesh,
    determinants: Tensor,
    quadrature_order: int,
) -> Tensor:
    """Integrate every shape function over its element.

    Computes ``sum_g w_g * det(J)_{g,e} * N(:, g)`` for each element ``e``.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    determinants : Tensor
        Jacobian determinants at the element quadrature points, shape
        (num_quad_points, num_elements), for instance from
        :func:`jacobian_determinants`.
    quadrature_order : int
        Polynomial degree of the quadrature rule the determinants were
        computed with.

    Returns
    -------
    Tensor
        Shape (num_nodes_per_element, num_elements).

    Raises
    ------
    ShapeMismatchError
        If ``determinants`` does not have shape
        (num_quad_points, num_elements).

    Examples
    --------
    >>> V = torch.tensor([[0.0, 1.0, 0.0], [0.0, 0.0, 1.0]], dtype=torch.float64)
    >>> mesh = finite_element_mesh(V, torch.tensor([[0], [1], [2]]), "triangle")
    >>> detJ = jacobian_determinants(mesh, quadrature_order=1)
    >>> integrated_shape_functions(mesh, detJ, quadrature_order=1).sum()
    tensor(0.5000, dtype=torch.float64)
    """
    element = mesh.element
    points, weights = element.quadrature(
        quadrature_order, dtype=mesh.X.dtype, device=mesh.X.device
    )
    expected = (weights.shape[0], mesh.num_elements)
    if tuple(determinants.shape) != expected:
        raise ShapeMismatchError(
            f"Expected element jacobian determinants of dimensions "
            f"{expected[0]}x{expected[1]} for element quadrature of "
            f"order={quadrature_order}, but got shape "
            f"{tuple(determinants.shape)}",
            expected=expected,
            actual=tuple(determinants.shape),
        )
    N = element.basis(points)  # (nodes, Q)
    determinants = determinants.to(dtype=N.dtype, device=N.device)
    return torch.einsum("g,ge,ng->ne", weights, determinants, N)
