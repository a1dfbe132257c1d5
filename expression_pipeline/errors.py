# expression_pipeline/errors.py


class DomainError(ValueError):
    """Raised when a value lies outside the domain of a transform (e.g. log of x <= 0)."""


class AnnotationMismatchError(ValueError):
    """Raised when a sample annotation does not describe the matrix it is paired with."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
