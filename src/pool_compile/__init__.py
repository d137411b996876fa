"""Pool Compile - decode pool streams into parquet tables."""
from .streams import StreamDecoder, write_property_tables, write_record_table

__all__ = ["StreamDecoder", "write_property_tables", "write_record_table"]
