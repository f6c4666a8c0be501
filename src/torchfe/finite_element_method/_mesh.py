"""Finite element mesh topology."""

from __future__ import annotations

import logging

import torch
from tensordict import tensorclass
from torch import Tensor

from torchfe.finite_element_method._element import (
    LagrangeElement,
    lagrange_element,
)
from torchfe.finite_element_method._node_key import NodeKey

logger = logging.getLogger(__name__)


@tensorclass
class Mesh:
    """Finite element mesh.

    As a tensorclass, Mesh supports:
    - Device movement: `mesh.to("cuda")` or `mesh.cuda()`
    - Dtype conversion: `mesh.to(torch.float64)` (E is read back as int64)
    - Serialization: `torch.save(mesh, path)` / `torch.load(path)`

    Attributes
    ----------
    X : Tensor
        Node positions, shape (dims, num_nodes). Column ``i`` is node ``i``.
    E : Tensor
        Element connectivity, shape (nodes_per_element, num_elements).
        Column ``e`` lists the node indices of element ``e`` in the
        element's canonical node order.
    element_type : str
        Element type: "line", "triangle", "quadrilateral", "tetrahedron",
        "hexahedron".
    order : int
        Polynomial order of the element.

    Notes
    -----
    Nodes shared by adjacent elements are stored once. Use
    :func:`finite_element_mesh` to build a mesh from a geometric mesh.
    """

    X: Tensor
    E: Tensor
    element_type: str
    order: int

    @property
    def element(self) -> LagrangeElement:
        """Reference element of the mesh."""
        return lagrange_element(self.element_type, int(self.order))

    @property
    def dims(self) -> int:
        """Embedding dimension of the mesh."""
        return self.X.shape[0]

    @property
    def num_nodes(self) -> int:
        """Number of nodes in the mesh."""
        return self.X.shape[1]

    @property
    def num_elements(self) -> int:
        """Number of elements in the mesh."""
        return self.E.shape[1]

    @property
    def nodes_per_element(self) -> int:
        """Number of nodes per element."""
        return self.E.shape[0]

    def vertex_positions(self) -> Tensor:
        """Positions of each element's affine base vertices.

        Returns
        -------
        Tensor
            Shape (dims, affine_nodes, num_elements).
        """
        vertices = torch.tensor(
            self.element.vertices, dtype=torch.int64, device=self.E.device
        )
        return self.X[:, self.E.long()[vertices]]

    def node_positions(self) -> Tensor:
        """Positions of every element's nodes.

        Returns
        -------
        Tensor
            Shape (dims, nodes_per_element, num_elements).
        """
        return self.X[:, self.E.long()]


def finite_element_mesh(
    vertices: Tensor,
    cells: Tensor,
    element_type: str,
    order: int = 1,
    *,
    dims: int | None = None,
) -> Mesh:
    """Build a finite element mesh from a geometric mesh.

    Every cell is turned into an element of the requested order. Nodes that
    adjacent elements have in common (shared vertices, edge and face nodes)
    are created once and referenced by all of them.

    Parameters
    ----------
    vertices : Tensor
        Vertex positions, shape (dims, num_vertices).
    cells : Tensor
        Cell vertex indices into ``vertices``, shape
        (affine_nodes, num_cells). Cells list their vertices in the element's
        Lagrange order, i.e. the order of ``element.affine_base.coordinates``.
    element_type : str
        Element type: "line", "triangle", "quadrilateral" (or "quad"),
        "tetrahedron", "hexahedron".
    order : int, optional
        Polynomial order of the elements. Default 1.
    dims : int, optional
        Embedding dimension. If given, ``vertices`` must have ``dims`` rows.

    Returns
    -------
    Mesh
        Mesh with ``X`` of shape (dims, num_nodes) and ``E`` of shape
        (nodes_per_element, num_cells).

    Notes
    -----
    Each node's affine weights with respect to its cell's vertices are
    evaluated in exact rational arithmetic and identify the node through a
    :class:`NodeKey`. Cells are visited in input order by a single writer of
    the node table, so node indices are reproducible: a node is numbered by
    the first cell that proposes it.

    Mismatched ``cells`` or ``vertices`` shapes and integer ``vertices``
    are programming errors and fail an assertion.

    Examples
    --------
    >>> V = torch.tensor([[0.0, 1.0, 0.0, 1.0], [0.0, 0.0, 1.0, 1.0]])
    >>> C = torch.tensor([[0, 1], [1, 3], [2, 2]])
    >>> mesh = finite_element_mesh(V, C, "triangle", order=1)
    >>> mesh.num_nodes
    4
    >>> mesh.E
    tensor([[0, 1],
            [1, 3],
            [2, 2]])
    """
    element = lagrange_element(element_type, order)
    affine_base = element.affine_base

    assert cells.dim() == 2 and cells.shape[0] == affine_base.num_nodes, (
        f"Expected cells of shape ({affine_base.num_nodes}, num_cells) for "
        f"{element.element_type} elements, got {tuple(cells.shape)}"
    )
    assert vertices.dim() == 2, (
        f"Expected vertices of shape (dims, num_vertices), got "
        f"{tuple(vertices.shape)}"
    )
    assert vertices.is_floating_point(), (
        f"Expected floating point vertex positions, got {vertices.dtype}"
    )
    if dims is not None:
        assert vertices.shape[0] == dims, (
            f"Expected vertices in {dims} dimensions, got {vertices.shape[0]}"
        )
    assert vertices.shape[0] >= element.dims, (
        f"Element {element.element_type} does not exist in "
        f"{vertices.shape[0]} dimensions"
    )

    cells = cells.to(device=vertices.device, dtype=torch.int64)
    num_cells = cells.shape[1]

    # Affine weights only depend on the reference node, not on the cell
    weights = [
        affine_base.exact_basis(xi) for xi in element.exact_coordinates
    ]
    float_weights = torch.tensor(
        [[float(w) for w in node_weights] for node_weights in weights],
        dtype=vertices.dtype,
        device=vertices.device,
    )  # (nodes_per_element, affine_nodes)

    # Position every node of every cell could take: (dims, nodes, cells)
    candidates = torch.einsum(
        "dac,na->dnc", vertices[:, cells], float_weights
    )

    sort_orders = torch.sort(cells, dim=0, stable=True).indices.T.tolist()
    cell_vertices = cells.T.tolist()

    node_table: dict[NodeKey, int] = {}
    created: list[tuple[int, int]] = []
    connectivity = []
    for c in range(num_cells):
        element_nodes = []
        for i, node_weights in enumerate(weights):
            key = NodeKey(cell_vertices[c], sort_orders[c], node_weights)
            node = node_table.get(key)
            if node is None:
                node = len(created)
                node_table[key] = node
                created.append((i, c))
            element_nodes.append(node)
        connectivity.append(element_nodes)

    local_nodes = torch.tensor(
        [i for i, _ in created], dtype=torch.int64, device=vertices.device
    )
    owner_cells = torch.tensor(
        [c for _, c in created], dtype=torch.int64, device=vertices.device
    )
    X = candidates[:, local_nodes, owner_cells]
    E = torch.tensor(
        connectivity, dtype=torch.int64, device=vertices.device
    ).reshape(num_cells, element.num_nodes)

    logger.debug(
        "Built %s mesh of order %d: %d nodes from %d cells",
        element.element_type,
        element.order,
        X.shape[1],
        num_cells,
    )

    return Mesh(
        X=X,
        E=E.T.contiguous(),
        element_type=element.element_type,
        order=element.order,
        batch_size=[],
    )


def mesh_quadrature_points(mesh: Mesh, quadrature_order: int) -> Tensor:
    """Physical positions of the element quadrature points.

    Parameters
    ----------
    mesh : Mesh
        Input mesh.
    quadrature_order : int
        Polynomial degree of the quadrature rule.

    Returns
    -------
    Tensor
        Shape (dims, num_quad_points * num_elements). Column
        ``e * num_quad_points + g`` is quadrature point ``g`` of element ``e``.
    """
    element = mesh.element
    points, _ = element.quadrature(
        quadrature_order, dtype=mesh.X.dtype, device=mesh.X.device
    )
    N = element.basis(points)  # (nodes, Q)
    positions = torch.einsum("dne,ng->deg", mesh.node_positions(), N)
    return positions.reshape(mesh.dims, -1)
