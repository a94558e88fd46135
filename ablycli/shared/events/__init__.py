from ablycli.shared.events.records import (
    EventRecord,
    create_event_record,
    enum_value,
    generic_normalizer,
    normalize_timestamp,
    read_field,
)

__all__ = [
    "EventRecord",
    "create_event_record",
    "enum_value",
    "generic_normalizer",
    "normalize_timestamp",
    "read_field",
]
