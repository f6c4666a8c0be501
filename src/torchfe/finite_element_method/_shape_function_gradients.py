"""Spatial gradients of shape functions."""

from __future__ import annotations

import logging
import warnings

import torch
from torch import Tensor

from torchfe.finite_element_method._element import lagrange_element
from torchfe.finite_element_method._exceptions import (
    NonAffineElementWarning,
    ShapeMismatchError,
)
from torchfe.finite_element_method._jacobian import is_affine
from torchfe.finite_element_method._mesh import Mesh

logger = logging.getLogger(__name__)


def shape_function_gradients_at(
    element_type: str,
    order: int,
    xi: Tensor,
    X: Tensor,
) -> Tensor:
    """Shape function gradients in physical space at one reference point.

    Parameters
    ----------
    element_type : str
        Element type.
    order : int
        Polynomial order of the element.
    xi : Tensor
        Reference point, shape (reference_dims,).
    X : Tensor
        Positions of the element's affine base vertices, shape
        (dims, affine_nodes), with ``dims >= reference_dims``.

    Returns
    -------
    Tensor
        Shape (num_nodes, dims). Row ``i`` is the gradient of shape
        function ``i``.

    Raises
    ------
    ShapeMismatchError
        If ``xi`` or ``X`` do not match the element.

    Notes
    -----
    With the affine map ``x = X N_affine(xi)`` of Jacobian
    ``J = X grad N_affine(xi)``, the physical gradients are
    ``grad_x N = grad_xi N J^+``, where ``J^+`` is the pseudoinverse of ``J``
    computed from its singular value decomposition. The pseudoinverse makes
    elements embedded in higher dimensions (e.g. triangles in 3D) work the
    same way as full-dimensional ones; near-singular Jacobians give large
    but finite gradients.

    The result is exact only when the element is an affine image of the
    reference element. Higher order elements with straight sides qualify;
    curved or non-parallelogram elements get an approximation and this is
    not checked. See :func:`is_affine`.

    Examples
    --------
    >>> X = torch.tensor([[0.0, 2.0, 0.0], [0.0, 0.0, 2.0]], dtype=torch.float64)
    >>> xi = torch.tensor([0.25, 0.25], dtype=torch.float64)
    >>> shape_function_gradients_at("triangle", 1, xi, X)
    tensor([[-0.5000, -0.5000],
            [ 0.5000,  0.0000],
            [ 0.0000,  0.5000]], dtype=torch.float64)
    """
    element = lagrange_element(element_type, order)
    affine_base = element.affine_base
    if X.dim() != 2 or X.shape[1] != affine_base.num_nodes:
        raise ShapeMismatchError(
            f"Expected element vertex positions of shape "
            f"(dims, {affine_base.num_nodes}), got {tuple(X.shape)}",
            expected=affine_base.num_nodes,
            actual=X.shape[1] if X.dim() == 2 else None,
        )
    xi = xi.to(dtype=X.dtype, device=X.device).reshape(-1, 1)

    grad_ref = element.basis_gradient(xi)[0]  # (nodes, ref_dims)
    J = X @ affine_base.basis_gradient(xi)[0]  # (dims, ref_dims)
    return grad_ref @ torch.linalg.pinv(J)


def shape_function_gradients(
    mesh: Mesh,
    quadrature_order: int,
    *,
    check_affine: bool = False,
    atol: float = 1e-10,
) -> Tensor:
    """Shape function gradients at every element quadrature point.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    quadrature_order : int
        Polynomial degree of the quadrature rule.
    check_affine : bool, optional
        Warn with :class:`NonAffineElementWarning` if some elements are not
        affine images of the reference element. Default False.
    atol : float, optional
        Absolute tolerance of the affine check. Default 1e-10.

    Returns
    -------
    Tensor
        Shape (num_nodes_per_element, dims * num_quad_points * num_elements).
        The (num_nodes_per_element, dims) gradient block of element ``e`` at
        quadrature point ``g`` starts at column
        ``e * dims * num_quad_points + g * dims``.

    Notes
    -----
    Gradients are computed from each element's affine base vertices as in
    :func:`shape_function_gradients_at`, for all elements and quadrature
    points at once.
    """
    element = mesh.element
    affine_base = element.affine_base
    points, _ = element.quadrature(
        quadrature_order, dtype=mesh.X.dtype, device=mesh.X.device
    )

    if check_affine:
        affine = is_affine(mesh, atol=atol)
        num_non_affine = int((~affine).sum())
        if num_non_affine > 0:
            logger.debug(
                "%d of %d elements are not affine", num_non_affine, affine.numel()
            )
            warnings.warn(
                f"{num_non_affine} of {affine.numel()} elements are not affine "
                f"images of the reference {element.element_type}; shape "
                f"function gradients are approximate",
                NonAffineElementWarning,
                stacklevel=2,
            )

    grad_ref = element.basis_gradient(points)  # (Q, nodes, ref_dims)
    grad_affine = affine_base.basis_gradient(points)  # (Q, affine, ref_dims)
    J = torch.einsum(
        "dae,qak->eqdk", mesh.vertex_positions(), grad_affine
    )  # (E, Q, dims, ref_dims)
    J_pinv = torch.linalg.pinv(J)  # (E, Q, ref_dims, dims)

    gradients = torch.einsum("qnk,eqkd->neqd", grad_ref, J_pinv)
    return gradients.reshape(element.num_nodes, -1)
