"""Test fixtures for finite element method tests."""

import itertools

import pytest
import torch


def _grid_vertices(n: int, dims: int) -> torch.Tensor:
    """Vertices of a structured grid on [0, 1]^dims, first axis fastest."""
    axis = torch.linspace(0.0, 1.0, n + 1, dtype=torch.float64)
    grids = torch.meshgrid(*([axis] * dims), indexing="ij")
    return torch.stack([g.reshape(-1) for g in reversed(grids)])


def _vertex_index(index: tuple[int, ...], n: int) -> int:
    return sum(i * (n + 1) ** k for k, i in enumerate(index))


def _box_cells(n: int, dims: int) -> list[tuple[int, ...]]:
    return list(
        tuple(reversed(c)) for c in itertools.product(range(n), repeat=dims)
    )


def grid_mesh(element_type: str, n: int) -> tuple[torch.Tensor, torch.Tensor]:
    """Structured mesh of the unit square/cube in (vertices, cells) form.

    Squares are split into two triangles, cubes into six Kuhn tetrahedra.
    Cells list their vertices in Lagrange order and simplices are positively
    oriented.

    Returns
    -------
    vertices : Tensor
        Shape (dims, num_vertices).
    cells : Tensor
        Shape (affine_nodes, num_cells).
    """
    dims = {
        "line": 1,
        "triangle": 2,
        "quadrilateral": 2,
        "tetrahedron": 3,
        "hexahedron": 3,
    }[element_type]
    vertices = _grid_vertices(n, dims)
    cells = []
    for origin in _box_cells(n, dims):

        def v(*offset):
            return _vertex_index(
                tuple(o + d for o, d in zip(origin, offset)), n
            )

        if element_type == "line":
            cells.append([v(0), v(1)])
        elif element_type == "triangle":
            cells.append([v(0, 0), v(1, 0), v(0, 1)])
            cells.append([v(1, 0), v(1, 1), v(0, 1)])
        elif element_type == "quadrilateral":
            cells.append([v(0, 0), v(1, 0), v(0, 1), v(1, 1)])
        elif element_type == "hexahedron":
            cells.append(
                [
                    v(*reversed(offset))
                    for offset in itertools.product((0, 1), repeat=3)
                ]
            )
        else:
            for axes in itertools.permutations(range(3)):
                path = [(0, 0, 0)]
                for axis in axes:
                    step = list(path[-1])
                    step[axis] = 1
                    path.append(tuple(step))
                cells.append([v(*p) for p in path])

    cells = torch.tensor(cells, dtype=torch.int64).T.contiguous()

    if element_type == "tetrahedron":
        # Swap two vertices of negatively oriented tetrahedra
        corners = vertices[:, cells]  # (3, 4, num_cells)
        edges = corners[:, 1:] - corners[:, :1]
        negative = torch.linalg.det(edges.permute(2, 0, 1)) < 0
        cells[:, negative] = cells[:, negative][[0, 2, 1, 3]]

    return vertices, cells


@pytest.fixture
def make_grid_mesh():
    """Fixture: factory building structured (vertices, cells) meshes."""
    return grid_mesh
