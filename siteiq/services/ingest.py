"""
Input-set ingestion from already-tokenized rows.

Rows are dicts keyed by column name (CSV tokenization happens upstream).
Invalid rows are skipped and reported as warnings; header errors reject the
whole set.
"""
import logging
import uuid
from typing import Any, Iterable, List, Mapping, Optional

from siteiq.config import VALIDATION_INVALID, VALIDATION_VALID
from siteiq.models.input_set import InputSet, InputRecord
from siteiq.pipeline.schema import ResolvedSchema
from siteiq.pipeline.validation import parse_number, validate_headers, validate_row
from siteiq.services.records import RecordStore

logger = logging.getLogger('services.ingest')


def collect_headers(rows: Iterable[Mapping[str, Any]]) -> List[str]:
    """Union of row keys in first-seen order."""
    seen = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def _typed_data(row: Mapping[str, Any], schema: ResolvedSchema) -> dict:
    """Copy of `row` with numeric field values stored as numbers (ints for integer fields)."""
    data = dict(row)
    for name, fd in schema.fields.items():
        if not fd.is_numeric or name not in data:
            continue
        number = parse_number(data[name])
        if number is None:
            continue
        data[name] = int(number) if fd.type == 'integer' else number
    return data


def _record_id(row: Mapping[str, Any], schema: ResolvedSchema, row_num: int) -> str:
    value = row.get(schema.identifier_column)
    if value is None or not str(value).strip():
        return f'row-{row_num}'
    return str(value).strip()


def ingest_rows(tenant_id: str, name: str, rows: List[Mapping[str, Any]], schema: ResolvedSchema,
                record_store: Optional[RecordStore] = None, input_set_id: Optional[str] = None,
                idempotency_key: Optional[str] = None, schema_version: Optional[str] = None) -> InputSet:
    """
    Validate `rows` against `schema` and persist them as a new input set.

    Returns the stored InputSet; its validation_status is `invalid` (and no
    records are stored) when header validation fails.
    """
    record_store = record_store or RecordStore()
    headers = collect_headers(rows)
    warnings, errors = validate_headers(headers, schema)

    records = []
    if not errors:
        for row_num, row in enumerate(rows, start=1):
            row_warnings, row_errors = validate_row(row, schema, row_num)
            warnings.extend(row_warnings)
            if row_errors:
                warnings.extend(f"row {row_num} skipped: {e}" for e in row_errors)
                continue
            records.append(InputRecord(record_id=_record_id(row, schema, row_num),
                                       data=_typed_data(row, schema)))

    input_set = InputSet(
        id=input_set_id or str(uuid.uuid4()),
        tenant_id=tenant_id,
        name=name or '',
        validation_status=VALIDATION_INVALID if errors else VALIDATION_VALID,
        row_count=len(records),
        schema_version=schema_version,
        warnings=warnings,
        errors=errors,
        idempotency_key=idempotency_key,
    )

    if errors:
        logger.warning("Input set %s rejected: %s", input_set.id, '; '.join(errors),
                       extra={'tenant_id': tenant_id})
    elif len(records) < len(rows):
        logger.info("Input set %s: %d of %d rows skipped", input_set.id,
                    len(rows) - len(records), len(rows), extra={'tenant_id': tenant_id})

    return record_store.create_input_set(input_set, records)
