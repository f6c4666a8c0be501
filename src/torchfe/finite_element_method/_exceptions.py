"""Exceptions for the finite element method module."""


class ShapeMismatchError(ValueError):
    """Raised when an input array disagrees with the element or mesh shape.

    Attributes
    ----------
    expected : tuple or int
        Shape (or dimension) required by the element/mesh configuration.
    actual : tuple or int
        Shape (or dimension) that was passed in.
    """

    def __init__(self, message: str, expected, actual):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class NonAffineElementWarning(UserWarning):
    """Warning for elements whose reference map is not affine.

    Shape function gradients computed from the affine base of such elements
    are approximations.
    """

    pass
