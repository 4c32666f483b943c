class TownsfolkError(Exception):
    pass


class EntityValidationError(TownsfolkError, ValueError):
    """Raised when an entity record is structurally invalid."""


class EntityNotFoundError(TownsfolkError, KeyError):
    def __init__(self, entity_id: str) -> None:
        super().__init__(entity_id)
        self.entity_id = entity_id

    def __str__(self) -> str:
        return f"Unknown entity id: {self.entity_id}"


class ScenarioContentError(TownsfolkError, ValueError):
    pass


class NarrativeServiceError(TownsfolkError, RuntimeError):
    pass
