"""Finite element method module.

This module provides the computational core of finite element assembly:
    - Lagrange reference elements and their quadrature rules
    - Mesh topology with nodes shared exactly between adjacent elements
    - Shape function values, element integrals and spatial gradients
    - Jacobian determinants and inverse reference maps
"""

from torchfe.finite_element_method._element import (
    LagrangeElement,
    lagrange_element,
)
from torchfe.finite_element_method._exceptions import (
    NonAffineElementWarning,
    ShapeMismatchError,
)
from torchfe.finite_element_method._jacobian import (
    is_affine,
    jacobian_determinants,
    reference_positions,
)
from torchfe.finite_element_method._mesh import (
    Mesh,
    finite_element_mesh,
    mesh_quadrature_points,
)
from torchfe.finite_element_method._node_key import NodeKey
from torchfe.finite_element_method._quadrature import quadrature_points
from torchfe.finite_element_method._shape_function_gradients import (
    shape_function_gradients,
    shape_function_gradients_at,
)
from torchfe.finite_element_method._shape_functions import (
    integrated_shape_functions,
    shape_functions,
    shape_functions_at,
)

__all__ = [
    "LagrangeElement",
    "Mesh",
    "NodeKey",
    "NonAffineElementWarning",
    "ShapeMismatchError",
    "finite_element_mesh",
    "integrated_shape_functions",
    "is_affine",
    "jacobian_determinants",
    "lagrange_element",
    "mesh_quadrature_points",
    "quadrature_points",
    "reference_positions",
    "shape_function_gradients",
    "shape_function_gradients_at",
    "shape_functions",
    "shape_functions_at",
]
