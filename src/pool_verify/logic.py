import hashlib
from pathlib import Path

from pool_core import (
    CustomFormat,
    CustomFormats,
    RecordReader,
    UnexpectedEof,
    UnknownTypeTag,
    resolve,
)
from .const import ERRORS


def _error(code: str, **detail) -> dict:
    return {"code": code, "message": ERRORS[code], **detail}


def _verdict(errors: list, **stats) -> dict:
    return {
        "status": "FAIL" if errors else "PASS",
        "error_count": len(errors),
        "errors": errors,
        **stats,
    }


def verify_stream(path: Path, custom_tags: list[int] | None = None) -> dict:
    """Walk a pool stream end to end and report framing problems.

    Misaligned payloads and undeclared custom tags are reported and
    skipped, since their length field keeps framing intact. Truncation
    stops the walk. With *custom_tags* given, any other custom tag is
    unknown; without it every custom tag is accepted as raw bytes.
    """
    if not path.exists():
        return _verdict([_error("E_STREAM_MISSING", path=str(path))], records=0, groups=0, properties=[], sha256="")

    raw = path.read_bytes()
    sha = hashlib.sha256(raw).hexdigest()
    size = len(raw)
    formats = None
    if custom_tags is not None:
        formats = CustomFormats(CustomFormat(t) for t in custom_tags)

    errors = []
    records = 0
    properties = set()
    with open(path, "rb") as f:
        reader = RecordReader(f, formats)
        while True:
            header_off = f.tell()
            if header_off == size:
                errors.append(_error("E_MISSING_END", offset=header_off))
                break
            try:
                header = reader.read_header()
            except UnknownTypeTag as e:
                errors.append(_error("E_UNKNOWN_TYPE_TAG", offset=header_off, type_tag=e.type_tag))
                properties.add(e.property_id)
                try:
                    reader.skip_property()
                except UnexpectedEof:
                    errors.append(_error("E_UNEXPECTED_EOF", offset=header_off))
                    break
                continue
            except UnexpectedEof:
                errors.append(_error("E_UNEXPECTED_EOF", offset=header_off))
                break

            if header is None:
                if f.tell() < size:
                    errors.append(_error("E_TRAILING_BYTES", offset=f.tell(), count=size - f.tell()))
                break

            type_tag, property_id = header
            properties.add(property_id)
            fmt = resolve(type_tag, formats)
            try:
                while True:
                    payload_off = f.tell()
                    payload = reader.read_payload()
                    if payload is None:
                        break
                    records += 1
                    length = len(payload[1])
                    if length % fmt.byte_width:
                        errors.append(_error(
                            "E_MISALIGNED_PAYLOAD",
                            offset=payload_off,
                            type_tag=type_tag,
                            length=length,
                            width=fmt.byte_width,
                        ))
            except UnexpectedEof:
                errors.append(_error("E_UNEXPECTED_EOF", offset=payload_off))
                break

    return _verdict(
        errors,
        records=records,
        groups=reader.groups,
        properties=sorted(properties),
        sha256=sha,
    )
