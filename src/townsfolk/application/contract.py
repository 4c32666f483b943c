CONTRACT_VERSION = "1.0.0"

STORE_OPERATIONS = (
    "register",
    "get_by_id",
    "get_by_name",
    "update",
    "find_entities_in_text",
    "export_snapshot",
    "import_snapshot",
)

SELECTION_OPERATIONS = (
    "select_entity",
    "compute_weights",
)

CONDITION_OPERATIONS = (
    "check_conditions",
    "get_critical_npc",
    "filter_available",
)

EXTRACTION_OPERATIONS = (
    "process_narrative",
    "process_explicit_entities",
)

CONTRACT_DTO_TYPES = (
    "ImportReport",
    "StoreSnapshot",
    "StoreStats",
    "WeightedCandidate",
    "ExplicitEntityMention",
    "ExtractionReport",
    "NarrativeRequest",
    "NarrativeResponse",
    "TurnResult",
)
