class BakeOpsError(Exception):
    """Base class for errors surfaced to callers of the core services."""


class NotFoundError(BakeOpsError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidInputError(BakeOpsError):
    pass


class InvalidTransitionError(BakeOpsError):
    pass


class ConflictError(BakeOpsError):
    pass
