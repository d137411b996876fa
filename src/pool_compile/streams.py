from __future__ import annotations

import hashlib
from pathlib import Path
from warnings import warn

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from pool_core import CustomFormat, CustomFormats, Kind, RecordReader, TypeFormat, UnknownTypeTag, resolve

# Arrow column type per numeric kind
ARROW_KINDS = {
    Kind.U8: pa.uint8(),
    Kind.U16: pa.uint16(),
    Kind.U32: pa.uint32(),
    Kind.U64: pa.uint64(),
    Kind.I8: pa.int8(),
    Kind.I16: pa.int16(),
    Kind.I32: pa.int32(),
    Kind.I64: pa.int64(),
    Kind.F32: pa.float32(),
    Kind.F64: pa.float64(),
}

# pandas dtype per numeric kind, so values are cast before Arrow conversion
PANDAS_KINDS = {
    Kind.U8: "uint8",
    Kind.U16: "uint16",
    Kind.U32: "uint32",
    Kind.U64: "uint64",
    Kind.I8: "int8",
    Kind.I16: "int16",
    Kind.I32: "int32",
    Kind.I64: "int64",
    Kind.F32: "float32",
    Kind.F64: "float64",
}

RECORDS_SCHEMA = pa.schema(
    [
        ("seq", pa.int64()),
        ("group", pa.int64()),
        ("byte_offset", pa.int64()),
        ("type_tag", pa.uint16()),
        ("property_id", pa.uint16()),
        ("kind", pa.string()),
        ("rows", pa.int16()),
        ("cols", pa.int16()),
        ("offset_instance_id", pa.uint64()),
        ("element_count", pa.int64()),
        ("byte_length", pa.int64()),
        ("content_hash", pa.string()),
    ]
)


def value_columns(fmt: TypeFormat) -> list[str]:
    """Column names for one element: value, v0..vN or r0c0..rMcN."""
    shape = fmt.shape
    if shape.category == "scalar":
        return ["value"]
    if shape.category == "vector":
        return [f"v{i}" for i in range(shape.cols)]
    return [f"r{i}c{j}" for i in range(shape.rows) for j in range(shape.cols)]


def _flat(fmt: TypeFormat, element) -> tuple:
    category = fmt.shape.category
    if category == "scalar":
        return (element,)
    if category == "vector":
        return element
    return tuple(x for row in element for x in row)


class StreamDecoder:
    """Decodes a pool stream in one forward pass.

    - Every non-empty payload becomes one row of the record table.
    - Every element of a built-in payload becomes one row of its
      property table, keyed by (property id, type tag).
    - Custom payloads are listed in the record table only.
    """

    def __init__(self, stream_path: Path, formats: CustomFormats | None = None):
        self.stream_path = Path(stream_path)
        self.formats = formats
        self.records: list[dict] = []
        self.tables: dict[tuple[int, int], list[tuple]] = {}
        self.scan_stats = {
            "groups": 0,
            "records": 0,
            "elements": 0,
            "custom_records": 0,
            "skipped_groups": 0,
        }

        self._scan()

    def _scan(self) -> None:
        with open(self.stream_path, "rb") as f:
            reader = RecordReader(f, self.formats)
            while True:
                try:
                    header = reader.read_header()
                except UnknownTypeTag as e:
                    skipped = reader.skip_property()
                    self.scan_stats["skipped_groups"] += 1
                    warn(f"Skipping property {e.property_id}: unknown type tag {e.type_tag} ({skipped} payloads)")
                    continue

                if header is None:
                    break
                type_tag, property_id = header
                group = reader.groups - 1
                fmt = resolve(type_tag, self.formats)

                while True:
                    byte_offset = f.tell()
                    payload = reader.read_payload()
                    if payload is None:
                        break
                    self._add_record(group, byte_offset, type_tag, property_id, fmt, *payload)

            self.scan_stats["groups"] = reader.groups
            trailing = f.read(1)
            if trailing:
                warn(f"Bytes follow the end-of-stream marker at offset {f.tell() - 1}")

    def _add_record(
        self,
        group: int,
        byte_offset: int,
        type_tag: int,
        property_id: int,
        fmt: TypeFormat | CustomFormat,
        offset_instance_id: int,
        data: bytes,
    ) -> None:
        if isinstance(fmt, CustomFormat):
            kind, rows, cols = "custom", 0, 0
            count = len(data)
            self.scan_stats["custom_records"] += 1
        else:
            kind, rows, cols = fmt.kind.name.lower(), fmt.shape.rows, fmt.shape.cols
            elements = fmt.decode_elements(data)
            count = len(elements)
            rows_out = self.tables.setdefault((property_id, type_tag), [])
            for i, element in enumerate(elements):
                rows_out.append((group, offset_instance_id + i) + tuple(_flat(fmt, element)))
            self.scan_stats["elements"] += count

        self.records.append(
            {
                "seq": len(self.records),
                "group": group,
                "byte_offset": byte_offset,
                "type_tag": type_tag,
                "property_id": property_id,
                "kind": kind,
                "rows": rows,
                "cols": cols,
                "offset_instance_id": offset_instance_id,
                "element_count": count,
                "byte_length": len(data),
                "content_hash": hashlib.sha256(data).hexdigest(),
            }
        )
        self.scan_stats["records"] += 1

    def get_scan_stats(self) -> dict:
        return dict(self.scan_stats)


def property_schema(fmt: TypeFormat) -> pa.Schema:
    value_type = ARROW_KINDS[fmt.kind]
    return pa.schema(
        [("group", pa.int64()), ("instance_id", pa.uint64())]
        + [(name, value_type) for name in value_columns(fmt)]
    )


def write_property_tables(decoder: StreamDecoder, out_path: Path) -> list[dict]:
    """Write properties/property_<id>_tag_<tag>.parquet per (property, type)."""
    (Path(out_path) / "properties").mkdir(parents=True, exist_ok=True)

    listing: list[dict] = []
    for (property_id, type_tag), rows in sorted(decoder.tables.items()):
        fmt = resolve(type_tag)
        schema = property_schema(fmt)
        rel = f"properties/property_{property_id}_tag_{type_tag}.parquet"

        df = pd.DataFrame(rows, columns=schema.names).astype(
            {"group": "int64", "instance_id": "uint64", **{c: PANDAS_KINDS[fmt.kind] for c in value_columns(fmt)}}
        )
        table = pa.Table.from_pandas(df, schema=schema, preserve_index=False)
        pq.write_table(table, Path(out_path) / rel)

        listing.append(
            {
                "property_id": property_id,
                "type_tag": type_tag,
                "kind": fmt.kind.name.lower(),
                "rows": fmt.shape.rows,
                "cols": fmt.shape.cols,
                "file": rel,
                "elements": len(rows),
            }
        )
    return listing


def write_record_table(decoder: StreamDecoder, out_path: Path) -> None:
    """Write records.parquet, one row per non-empty payload."""
    if not decoder.records:
        pq.write_table(RECORDS_SCHEMA.empty_table(), Path(out_path) / "records.parquet")
        return

    df = pd.DataFrame(decoder.records, columns=RECORDS_SCHEMA.names).astype(
        {"type_tag": "uint16", "property_id": "uint16", "rows": "int16", "cols": "int16", "offset_instance_id": "uint64"}
    )
    table = pa.Table.from_pandas(df, schema=RECORDS_SCHEMA, preserve_index=False)
    pq.write_table(table, Path(out_path) / "records.parquet")
