"""Pool Verify - structural verification of pool streams."""
from .logic import verify_stream

__all__ = ["verify_stream"]
