from dataclasses import dataclass


@dataclass
class EntityRegistered:
    entity_id: str
    entity_type: str
    store_version: int


@dataclass
class EntityUpdated:
    entity_id: str
    changed_keys: tuple
    store_version: int


@dataclass
class EntityRemoved:
    entity_id: str
    store_version: int


@dataclass
class StoreReset:
    reason: str
    store_version: int


@dataclass
class EncounterSelected:
    entity_id: str
    entity_name: str
    turn_number: int
    critical: bool = False
