import sys
from pathlib import Path

def main():
    if len(sys.argv) != 2:
        print("Usage: corrupt_one_byte.py <file>")
        raise SystemExit(2)

    p = Path(sys.argv[1])
    b = bytearray(p.read_bytes())
    if len(b) < 64:
        print("File too small to corrupt safely.")
        raise SystemExit(2)

    # The stream starts with a header: type tag (2 bytes LE) then property id.
    # Flip the top bit of the tag's high byte so it names a different kind and
    # shape; the payload length then no longer divides by the element width.
    idx = 1
    b[idx] ^= 0x80
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} in {p}")

if __name__ == "__main__":
    main()
