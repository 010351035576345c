"""Domain errors shared by repositories and services."""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class DuplicateError(Exception):
    """Raised when a uniqueness constraint would be violated."""

    pass


class ValidationError(Exception):
    """Raised when input values are out of range or inconsistent."""

    pass
