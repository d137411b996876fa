import json
from pathlib import Path
import click
from pool_core.protocol import CUSTOM_FORMAT_OFFSET, MAX_U16
from .logic import verify_stream

@click.group()
def main():
    pass

@main.command("stream")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--custom-tag",
    "custom_tags",
    multiple=True,
    type=click.IntRange(CUSTOM_FORMAT_OFFSET, MAX_U16),
    help="Declare an expected custom format tag. Once any is given, other custom tags fail.",
)
def stream_cmd(path: Path, custom_tags: tuple[int, ...]):
    result = verify_stream(path, list(custom_tags) if custom_tags else None)
    click.echo(json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    if result["status"] != "PASS":
        raise SystemExit(1)

if __name__ == "__main__":
    main()
