"""Protocol interfaces for the Omnisol client."""
from .transport import Transport

__all__ = ["Transport"]
