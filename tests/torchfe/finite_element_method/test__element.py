"""Tests for Lagrange reference elements."""

from fractions import Fraction

import hypothesis
import hypothesis.strategies
import pytest
import torch

from torchfe.finite_element_method import (
    LagrangeElement,
    ShapeMismatchError,
    lagrange_element,
)

ELEMENT_TYPES = [
    "line",
    "triangle",
    "quadrilateral",
    "tetrahedron",
    "hexahedron",
]

ALL_ELEMENTS = [(t, p) for t in ELEMENT_TYPES for p in (1, 2, 3)]


def _num_nodes(element_type: str, order: int) -> int:
    return {
        "line": order + 1,
        "triangle": (order + 1) * (order + 2) // 2,
        "quadrilateral": (order + 1) ** 2,
        "tetrahedron": (order + 1) * (order + 2) * (order + 3) // 6,
        "hexahedron": (order + 1) ** 3,
    }[element_type]


class TestLagrangeElement:
    @pytest.mark.parametrize("element_type,order", ALL_ELEMENTS)
    def test_num_nodes(self, element_type, order):
        """Node count matches the Lagrange space dimension."""
        element = LagrangeElement(element_type, order)
        assert element.num_nodes == _num_nodes(element_type, order)
        assert len(element.coordinates) == element.num_nodes

    @pytest.mark.parametrize("element_type,order", ALL_ELEMENTS)
    def test_interpolation(self, element_type, order):
        """Shape functions are 1 at their own node and 0 at the others."""
        element = LagrangeElement(element_type, order)
        nodes = element.node_coordinates()
        basis = element.basis(nodes)

        expected = torch.eye(element.num_nodes, dtype=torch.float64)
        assert torch.allclose(basis, expected, atol=1e-12)

    @pytest.mark.parametrize("element_type,order", ALL_ELEMENTS)
    def test_exact_interpolation(self, element_type, order):
        """Exact evaluation at the nodes gives the exact identity."""
        element = LagrangeElement(element_type, order)
        for i, xi in enumerate(element.exact_coordinates):
            values = element.exact_basis(xi)
            assert values == [Fraction(int(i == j)) for j in range(len(values))]

    def test_triangle_p1_matches_barycentric(self):
        """P1 triangle: N1 = 1-x-y, N2 = x, N3 = y."""
        element = LagrangeElement("triangle", 1)
        points = torch.tensor([[0.2, 0.5], [0.3, 0.1]], dtype=torch.float64)
        basis = element.basis(points)

        expected = torch.tensor(
            [[0.5, 0.4], [0.2, 0.5], [0.3, 0.1]], dtype=torch.float64
        )
        assert torch.allclose(basis, expected)

    def test_triangle_p1_gradient(self):
        """P1 triangle gradients are constant: [-1,-1], [1,0], [0,1]."""
        element = LagrangeElement("triangle", 1)
        points = torch.tensor([[0.3], [0.3]], dtype=torch.float64)
        grad = element.basis_gradient(points)

        assert grad.shape == (1, 3, 2)
        expected = torch.tensor(
            [[-1.0, -1.0], [1.0, 0.0], [0.0, 1.0]], dtype=torch.float64
        )
        assert torch.allclose(grad[0], expected)

    def test_exact_centroid(self):
        """P1 triangle at its centroid is exactly 1/3 per node."""
        element = LagrangeElement("triangle", 1)
        values = element.exact_basis([Fraction(1, 3), Fraction(1, 3)])
        assert values == [Fraction(1, 3)] * 3

    @pytest.mark.parametrize(
        "element_type,order,vertices",
        [
            ("line", 3, (0, 3)),
            ("triangle", 1, (0, 1, 2)),
            ("triangle", 2, (0, 2, 5)),
            ("quadrilateral", 2, (0, 2, 6, 8)),
            ("tetrahedron", 2, (0, 2, 5, 9)),
            ("hexahedron", 1, tuple(range(8))),
        ],
    )
    def test_vertices(self, element_type, order, vertices):
        """Affine base vertices sit at the element corners."""
        element = LagrangeElement(element_type, order)
        assert element.vertices == vertices
        assert element.affine_base.order == 1
        assert element.affine_base.element_type == element.element_type

    def test_quad_alias(self):
        """'quad' is accepted as an alias of 'quadrilateral'."""
        assert LagrangeElement("quad", 2) == LagrangeElement("quadrilateral", 2)

    @pytest.mark.parametrize(
        "element_type,expected",
        [
            ("line", True),
            ("triangle", True),
            ("quadrilateral", False),
            ("tetrahedron", True),
            ("hexahedron", False),
        ],
    )
    def test_is_simplex(self, element_type, expected):
        assert LagrangeElement(element_type, 2).is_simplex is expected

    def test_shared_instance(self):
        """lagrange_element returns one instance per type and order."""
        assert lagrange_element("triangle", 2) is lagrange_element(
            "triangle", 2
        )

    def test_invalid_element_type(self):
        with pytest.raises(ValueError, match="Unknown element type"):
            LagrangeElement("pyramid", 1)

    @pytest.mark.parametrize("order", [0, 4])
    def test_invalid_order(self, order):
        with pytest.raises(ValueError, match="not supported"):
            LagrangeElement("triangle", order)

    def test_points_dimension_mismatch(self):
        """2D points against a 3D element report expected=3, actual=2."""
        element = LagrangeElement("tetrahedron", 1)
        points = torch.rand(2, 5, dtype=torch.float64)

        with pytest.raises(ShapeMismatchError) as excinfo:
            element.basis(points)
        assert excinfo.value.expected == 3
        assert excinfo.value.actual == 2

        with pytest.raises(ShapeMismatchError):
            element.basis_gradient(points)


class TestLagrangeElementProperties:
    @pytest.mark.parametrize("element_type,order", ALL_ELEMENTS)
    def test_gradient_matches_finite_differences(self, element_type, order):
        """Analytical gradients agree with central differences."""
        torch.manual_seed(0)
        element = LagrangeElement(element_type, order)
        points = torch.rand(element.dims, 7, dtype=torch.float64) * 0.5
        grad = element.basis_gradient(points)

        h = 1e-6
        for k in range(element.dims):
            shift = torch.zeros_like(points)
            shift[k] = h
            difference = (
                element.basis(points + shift) - element.basis(points - shift)
            ) / (2 * h)
            assert torch.allclose(grad[:, :, k], difference.T, atol=1e-6)

    @pytest.mark.parametrize("element_type,order", ALL_ELEMENTS)
    def test_gradients_sum_to_zero(self, element_type, order):
        element = LagrangeElement(element_type, order)
        points = torch.rand(element.dims, 5, dtype=torch.float64)
        grad = element.basis_gradient(points)
        assert torch.allclose(
            grad.sum(dim=1),
            torch.zeros(5, element.dims, dtype=torch.float64),
            atol=1e-10,
        )

    @hypothesis.given(
        element=hypothesis.strategies.sampled_from(ALL_ELEMENTS),
        coordinates=hypothesis.strategies.lists(
            hypothesis.strategies.floats(
                min_value=0.0,
                max_value=1.0,
                allow_nan=False,
                allow_infinity=False,
            ),
            min_size=3,
            max_size=3,
        ),
    )
    def test_partition_of_unity(self, element, coordinates):
        """Shape functions sum to 1 at every reference point."""
        element = lagrange_element(*element)
        point = torch.tensor(
            coordinates[: element.dims], dtype=torch.float64
        ).unsqueeze(-1)
        basis = element.basis(point)
        assert torch.allclose(
            basis.sum(dim=0), torch.ones(1, dtype=torch.float64), atol=1e-10
        )
