ERRORS = {
  "E_STREAM_MISSING": "Stream file missing",
  "E_UNEXPECTED_EOF": "Stream truncated inside a header or payload",
  "E_UNKNOWN_TYPE_TAG": "Type tag is neither built-in nor a declared custom format",
  "E_MISALIGNED_PAYLOAD": "Payload length is not a multiple of the element width",
  "E_MISSING_END": "Stream has no end-of-stream marker",
  "E_TRAILING_BYTES": "Bytes follow the end-of-stream marker",
}
