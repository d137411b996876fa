"""Query a compiled stream - trace one instance's values over time."""
from __future__ import annotations

import sys
from pathlib import Path

import duckdb


def main() -> None:
    if len(sys.argv) < 4:
        print("Usage: python query.py <tables_path> <property_id> <instance_id> [time_property_id]")
        print("Example: python query.py out/ 1 3 0")
        sys.exit(1)

    tables = Path(sys.argv[1])
    property_id = int(sys.argv[2])
    instance_id = int(sys.argv[3])
    time_property = int(sys.argv[4]) if len(sys.argv) > 4 else 0

    con = duckdb.connect(":memory:")

    # Load tables
    con.execute(f"CREATE VIEW records AS SELECT * FROM '{tables}/records.parquet'")
    con.execute(
        f"CREATE VIEW prop AS SELECT * FROM '{tables}/properties/property_{property_id}_tag_*.parquet'"
    )
    con.execute(
        f"CREATE VIEW clock AS SELECT * FROM '{tables}/properties/property_{time_property}_tag_*.parquet'"
    )

    # Frames are not in the wire format; by convention the time property
    # opens each frame, so a value belongs to the latest time group at or before it.
    sql = f"""
    SELECT
        (SELECT c.value FROM clock c WHERE c."group" <= p."group"
         ORDER BY c."group" DESC LIMIT 1) AS t,
        p.*
    FROM prop p
    WHERE p.instance_id = {instance_id}
    ORDER BY p."group"
    """

    print(f"--- Property {property_id}, instance {instance_id} ---\n")

    df = con.execute(sql).fetchdf()
    if df.empty:
        print("No values recorded for this instance.")
    else:
        for _, row in df.iterrows():
            values = [f"{row[c]}" for c in df.columns if c not in ("t", "group", "instance_id")]
            print(f"t={row['t']}  group={row['group']}  " + " ".join(values))

    n = con.execute("SELECT count(*) FROM records").fetchone()[0]
    print(f"\n{n} payloads in stream")


if __name__ == "__main__":
    main()
