"""Exception hierarchy."""


class PinforgeError(Exception):
    """Base class for engine errors."""


class ElementRenderError(PinforgeError):
    """A single element could not be painted."""

    def __init__(self, element_id: str, message: str):
        super().__init__(f"Element {element_id}: {message}")
        self.element_id = element_id


class RowRenderError(PinforgeError):
    """A whole row could not be produced."""

    def __init__(self, row_index: int, message: str):
        super().__init__(f"Row {row_index}: {message}")
        self.row_index = row_index


class FontResolutionError(PinforgeError):
    """A font family could not be fetched or registered."""


class DistributedStateError(PinforgeError):
    """The cache/lock service returned an error or was unreachable."""


class ConfigurationError(PinforgeError):
    """Campaign or template data is missing or malformed."""
