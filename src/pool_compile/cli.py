"""Pool Compile - Stream to Parquet Compiler."""
from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path

import click

from pool_core import CustomFormat, CustomFormats
from pool_core.protocol import CUSTOM_FORMAT_OFFSET, MAX_U16
from pool_compile.streams import StreamDecoder, write_property_tables, write_record_table

# Fixed timestamp for byte-reproducible manifests
REPRODUCIBLE_TIMESTAMP = "2026-01-01T00:00:00Z"


def compile_stream(
    stream_path: Path,
    out_path: Path,
    custom_tags: list[int] | None = None,
    timestamp: str | None = None,
) -> dict:
    """Compile a pool stream into parquet tables plus a manifest."""
    print(f"Compiling Stream: {stream_path}")

    if timestamp is None:
        timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

    formats = None
    if custom_tags is not None:
        formats = CustomFormats(CustomFormat(t) for t in custom_tags)

    # 1. Decode (fails closed on any framing or alignment error)
    decoder = StreamDecoder(stream_path, formats)
    stats = decoder.get_scan_stats()

    # 2. Write tables
    out_path.mkdir(parents=True, exist_ok=True)
    write_record_table(decoder, out_path)
    properties = write_property_tables(decoder, out_path)

    # 3. Manifest
    manifest = {
        "created": timestamp,
        "stream": Path(stream_path).name,
        "sha256": hashlib.sha256(Path(stream_path).read_bytes()).hexdigest(),
        "stats": stats,
        "records": "records.parquet",
        "properties": properties,
    }
    man_bytes = json.dumps(
        manifest, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")
    (out_path / "manifest.json").write_bytes(man_bytes)

    print(f"PASS: Tables generated at {out_path}")
    print(f"  Groups: {stats['groups']}")
    print(f"  Records: {stats['records']}")
    print(f"  Elements: {stats['elements']}")
    return manifest


@click.command()
@click.argument("stream", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("out", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--custom-tag",
    "custom_tags",
    multiple=True,
    type=click.IntRange(CUSTOM_FORMAT_OFFSET, MAX_U16),
    help="Declare an expected custom format tag. Once any is given, other custom tags are skipped.",
)
@click.option("--reproducible", is_flag=True, help="Use a fixed manifest timestamp")
def main(stream: Path, out: Path, custom_tags: tuple[int, ...], reproducible: bool) -> None:
    """Compile a pool STREAM into parquet tables under OUT."""
    try:
        compile_stream(
            stream,
            out,
            custom_tags=list(custom_tags) if custom_tags else None,
            timestamp=REPRODUCIBLE_TIMESTAMP if reproducible else None,
        )
    except Exception as e:
        # Fail closed, with a single-line reason.
        print(f"FATAL: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
