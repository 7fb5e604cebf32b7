"""
Domain exceptions.

Read paths return None/empty instead of raising NotFoundError; mutation and
propagation paths raise it so the caller fails fast.
"""


class StormWatchError(Exception):
    """Base class for domain errors."""
    pass


class InvalidGeometryError(StormWatchError):
    """Raised when a coordinate list is empty or contains a malformed point."""
    pass


class NotFoundError(StormWatchError):
    """Raised when a referenced device, road segment, alert or prediction is missing."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class BatchTooLargeError(StormWatchError):
    """Raised when a call exceeds a per-call ceiling (documents, grid cells)."""

    def __init__(self, size: int, limit: int, unit: str = "documents"):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} {unit} exceeds the per-call limit of {limit}")
