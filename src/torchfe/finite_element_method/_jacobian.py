"""Jacobians of the map from reference to physical elements."""

from __future__ import annotations

import torch
from torch import Tensor

from torchfe.finite_element_method._exceptions import ShapeMismatchError
from torchfe.finite_element_method._mesh import Mesh


def jacobian_determinants(mesh: Mesh, quadrature_order: int) -> Tensor:
    """Jacobian determinants at every element quadrature point.

    The Jacobian is that of the isoparametric map
    ``x(xi) = sum_i X_i N_i(xi)`` over all element nodes, so curved elements
    are handled exactly.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    quadrature_order : int
        Polynomial degree of the quadrature rule.

    Returns
    -------
    Tensor
        Shape (num_quad_points, num_elements).

    Notes
    -----
    When the embedding dimension equals the reference dimension, the signed
    determinant is returned. Otherwise (e.g. triangles in 3D) the measure
    ``sqrt(det(J^T J))`` is returned, computed as the product of the singular
    values of ``J``.
    """
    element = mesh.element
    points, _ = element.quadrature(
        quadrature_order, dtype=mesh.X.dtype, device=mesh.X.device
    )
    grad_ref = element.basis_gradient(points)  # (Q, nodes, ref_dims)
    J = torch.einsum("dne,qnk->eqdk", mesh.node_positions(), grad_ref)
    if mesh.dims == element.dims:
        det_J = torch.linalg.det(J)
    else:
        det_J = torch.linalg.svdvals(J).prod(dim=-1)
    return det_J.T.contiguous()


def is_affine(mesh: Mesh, atol: float = 1e-10) -> Tensor:
    """Check which elements are affine images of the reference element.

    An element is affine when its nodes coincide with the affine
    interpolation of its vertices (straight sides, evenly placed nodes) and
    the Jacobian of its affine base is the same everywhere (e.g. a
    quadrilateral is a parallelogram). That Jacobian is multilinear in the
    reference coordinates, so it is compared at the reference corners.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    atol : float, optional
        Absolute tolerance, in mesh coordinate units. Default 1e-10.

    Returns
    -------
    Tensor
        Boolean tensor of shape (num_elements,).
    """
    element = mesh.element
    affine_base = element.affine_base
    dtype = mesh.X.dtype
    device = mesh.X.device
    vertex_positions = mesh.vertex_positions()  # (dims, affine_nodes, E)

    node_weights = affine_base.basis(
        element.node_coordinates(dtype=dtype, device=device)
    )  # (affine_nodes, nodes)
    interpolated = torch.einsum(
        "dae,an->dne", vertex_positions, node_weights
    )
    node_error = (
        (mesh.node_positions() - interpolated).abs().amax(dim=(0, 1))
    )

    corners = affine_base.node_coordinates(dtype=dtype, device=device)
    J = torch.einsum(
        "dae,qak->eqdk",
        vertex_positions,
        affine_base.basis_gradient(corners),
    )
    jacobian_error = (J - J[:, :1]).abs().amax(dim=(1, 2, 3))

    return (node_error <= atol) & (jacobian_error <= atol)


def reference_positions(
    mesh: Mesh,
    elements: Tensor,
    points: Tensor,
    max_iterations: int = 5,
    tolerance: float = 1e-10,
) -> Tensor:
    """Map physical points to reference coordinates of their elements.

    Inverts the isoparametric map of each element with Gauss-Newton
    iterations, starting from the reference element's centroid.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    elements : Tensor
        Index of the element containing each point, shape (num_points,).
    points : Tensor
        Physical points, shape (dims, num_points).
    max_iterations : int, optional
        Maximum number of Gauss-Newton iterations. Default 5.
    tolerance : float, optional
        Iterations stop once every residual component is at most
        ``tolerance``. Default 1e-10.

    Returns
    -------
    Tensor
        Reference coordinates, shape (reference_dims, num_points).

    Raises
    ------
    ShapeMismatchError
        If ``points`` does not have shape (dims, len(elements)).

    Notes
    -----
    Affine elements are inverted exactly by the first iteration.
    """
    expected = (mesh.dims, elements.shape[0])
    if tuple(points.shape) != expected:
        raise ShapeMismatchError(
            f"Expected points of shape {expected}, got {tuple(points.shape)}",
            expected=expected,
            actual=tuple(points.shape),
        )

    element = mesh.element
    num_points = elements.shape[0]
    # (dims, nodes, num_points)
    element_nodes = mesh.X[:, mesh.E.long()[:, elements]]

    centroid = element.affine_base.node_coordinates(
        dtype=mesh.X.dtype, device=mesh.X.device
    ).mean(dim=1, keepdim=True)
    xi = centroid.expand(element.dims, num_points).clone()

    for _ in range(max_iterations):
        N = element.basis(xi)
        residual = torch.einsum("dnp,np->dp", element_nodes, N) - points
        if residual.numel() == 0 or residual.abs().max() <= tolerance:
            break
        grad_ref = element.basis_gradient(xi)  # (P, nodes, ref_dims)
        J = torch.einsum("dnp,pnk->pdk", element_nodes, grad_ref)
        step = torch.linalg.pinv(J) @ residual.T.unsqueeze(-1)
        xi = xi - step.squeeze(-1).T

    return xi
