# card_crawler/aggregator.py

from __future__ import annotations
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .config_behavior import CARD_SCHEMA
from .models import (
    AggregatedRecord,
    CompletenessReport,
    ContentType,
    FieldKind,
    SourceFieldSet,
)

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """
    None, "" / whitespace-only strings, and empty collections or objects.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def kind_of(value: Any) -> FieldKind:
    if isinstance(value, (list, tuple, set)):
        return FieldKind.COLLECTION
    if isinstance(value, dict):
        return FieldKind.OBJECT
    return FieldKind.SCALAR


def _empty_value(kind: FieldKind) -> Any:
    if kind == FieldKind.COLLECTION:
        return []
    if kind == FieldKind.OBJECT:
        return {}
    return None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class CardDataAggregator:
    """
    Merges fields extracted from many sources into one card record.

    Merge rules per field kind:
    - scalar:     first non-empty value in arrival order wins
    - collection: union, duplicates compared on the trimmed text (case-sensitive)
    - object:     merged key by key with the two rules above, one level deep

    The record shape comes from the schema; fields outside it take their kind
    from the first value seen. Only the crawl orchestrator's thread calls
    add_source(), in fetch-completion order.
    """

    def __init__(self, schema: Optional[Mapping[str, Union[str, FieldKind]]] = None) -> None:
        self.schema: Dict[str, FieldKind] = {
            name: FieldKind(kind) for name, kind in (schema if schema is not None else CARD_SCHEMA).items()
        }
        self.reset()

    # -------- state -------------------------------------------------------

    def reset(self) -> None:
        self._kinds: Dict[str, FieldKind] = dict(self.schema)
        self._fields: Dict[str, Any] = {
            name: _empty_value(kind) for name, kind in self._kinds.items()
        }
        # Dedup keys per collection, keyed by field name or (object field, sub key)
        self._seen: Dict[Any, set] = {}
        self._sources: List[SourceFieldSet] = []

    @property
    def sources(self) -> List[SourceFieldSet]:
        return list(self._sources)

    # -------- merging -----------------------------------------------------

    def _dedup_key(self, entry: Any) -> Any:
        if isinstance(entry, str):
            return entry.strip()
        if isinstance(entry, dict):
            return tuple(sorted((str(k), repr(v)) for k, v in entry.items()))
        if isinstance(entry, list):
            return repr(entry)
        return entry

    def _merge_collection(self, target: List[Any], incoming: Any, seen_key: Any) -> None:
        seen = self._seen.setdefault(seen_key, {self._dedup_key(e) for e in target})
        for entry in _as_list(incoming):
            if is_empty(entry):
                continue
            if isinstance(entry, str):
                entry = entry.strip()
            key = self._dedup_key(entry)
            if key in seen:
                continue
            seen.add(key)
            target.append(entry)

    def _merge_object(self, name: str, target: Dict[str, Any], incoming: Mapping[str, Any]) -> None:
        for key, value in incoming.items():
            if is_empty(value):
                continue
            sub_kind = kind_of(value)
            current = target.get(key)

            if sub_kind == FieldKind.COLLECTION or isinstance(current, list):
                if not isinstance(current, list):
                    current = _as_list(current)
                    target[key] = current
                self._merge_collection(current, value, (name, key))
            elif is_empty(current):
                target[key] = copy.deepcopy(value)

    def add_source(
        self,
        fields: Mapping[str, Any],
        source_type: Union[ContentType, str],
        url: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SourceFieldSet:
        """
        Merge one source's extracted fields into the record and remember the source.
        """
        source = SourceFieldSet(
            source_type=ContentType(source_type),
            source_url=url,
            fields=copy.deepcopy(dict(fields)),
            metadata=dict(metadata or {}),
        )

        for name, value in source.fields.items():
            if is_empty(value):
                continue

            kind = self._kinds.get(name)
            if kind is None:
                kind = kind_of(value)
                self._kinds[name] = kind
                self._fields[name] = _empty_value(kind)
                logger.debug("Field %s not in schema, treating as %s", name, kind.value)

            if kind == FieldKind.SCALAR:
                if is_empty(self._fields[name]):
                    self._fields[name] = value
            elif kind == FieldKind.COLLECTION:
                self._merge_collection(self._fields[name], value, name)
            elif isinstance(value, Mapping):
                self._merge_object(name, self._fields[name], value)
            else:
                logger.warning("Ignoring non-object value for object field %s from %s", name, url)

        self._sources.append(source)
        logger.info(
            "Added %s source %s (%d fields)",
            source.source_type.value, url,
            sum(1 for v in source.fields.values() if not is_empty(v)),
        )
        return source

    # -------- views -------------------------------------------------------

    def merge(self) -> AggregatedRecord:
        """
        Snapshot of the current record; later add_source() calls do not change it.
        """
        return AggregatedRecord(fields=copy.deepcopy(self._fields), sources=list(self._sources))

    def completeness(self) -> CompletenessReport:
        per_field = {
            name: ("empty" if is_empty(value) else "filled")
            for name, value in self._fields.items()
        }
        filled = sum(1 for status in per_field.values() if status == "filled")
        return CompletenessReport(
            total_fields=len(per_field),
            filled_fields=filled,
            empty_fields=len(per_field) - filled,
            per_field_status=per_field,
        )

    def clean(self) -> None:
        """
        Trim scalar strings and drop duplicates that only differ by surrounding whitespace.
        """
        for name, kind in self._kinds.items():
            value = self._fields[name]
            if kind == FieldKind.SCALAR and isinstance(value, str):
                self._fields[name] = value.strip() or None
            elif kind == FieldKind.COLLECTION:
                self._seen.pop(name, None)
                entries, self._fields[name] = value, []
                self._merge_collection(self._fields[name], entries, name)

    def summary(self) -> str:
        report = self.completeness()
        lines = [
            f"Sources: {len(self._sources)}",
            f"Completeness: {report.filled_fields}/{report.total_fields} ({report.percentage:.1f}%)",
        ]
        for name, status in report.per_field_status.items():
            value = self._fields[name]
            if status == "empty":
                detail = "-"
            elif isinstance(value, (list, dict)):
                detail = f"{len(value)} item(s)"
            else:
                detail = str(value)
            lines.append(f"  {name}: {detail}")
        return "\n".join(lines)
