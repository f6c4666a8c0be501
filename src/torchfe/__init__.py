"""torchfe: PyTorch finite element mesh topology and shape functions."""

from . import finite_element_method

__all__ = [
    "finite_element_method",
]

__version__ = "0.1.0"
