"""Form builder service exceptions."""


class FormBuilderError(Exception):
    """Base exception for form and response operations."""


class InvalidPayloadError(FormBuilderError):
    """Raised when submitted data fails validation."""


class NotFoundError(FormBuilderError):
    """Raised when a resource is absent or not visible to the requester."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")
