"""Server-into-local reconciliation of keyed collections.

Records are matched by the string form of a single field, or by a tuple of
the string forms of several fields, so ``1`` and ``"1"`` are the same key.
On a match the server's fields overwrite the local ones while local-only
fields survive; unmatched server records are appended and local-only records
are kept. The server is the source of truth, so merging is only ever done in
this direction.

Matching is a linear scan per server record, O(local x server). That is fine
for a classroom (hundreds of records per collection); an index by key is
needed before this is used on larger data.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple, Union

KeySpec = Union[str, Tuple[str, ...]]
Record = Dict[str, Any]

MERGE_KEYS: Dict[str, KeySpec] = {
    "subjects": "id",
    "classes": "id",
    "students": "id",
    "tasks": "id",
    "scores": ("studentId", "taskId"),
    "attendance": ("studentId", "date"),
    "submissions": ("studentId", "taskId"),
    "materials": "id",
    "schedules": "id",
}


def _text(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


RecordKey = Union[str, Tuple[str, ...]]


def record_key(record: Record, key_spec: KeySpec) -> RecordKey:
    if isinstance(key_spec, str):
        return _text(record.get(key_spec))
    return tuple(_text(record.get(field)) for field in key_spec)


def find_index(records: Sequence[Record], key_spec: KeySpec, key: RecordKey) -> int:
    for index, record in enumerate(records):
        if isinstance(record, dict) and record_key(record, key_spec) == key:
            return index
    return -1


def merge_collections(local: Sequence[Record], server: Any, key_spec: KeySpec) -> List[Record]:
    merged: List[Record] = [dict(r) if isinstance(r, dict) else r for r in local]
    if not isinstance(server, list):
        return merged

    for server_record in server:
        if not isinstance(server_record, dict):
            continue
        index = find_index(merged, key_spec, record_key(server_record, key_spec))
        if index >= 0:
            merged[index] = {**merged[index], **server_record}
        else:
            merged.append(dict(server_record))
    return merged
