"""Client side of the admin-ajax scan protocol."""

from .ajax_client import ScanServiceClient
from .envelope import GUARD, SERVICE, TRANSPORT, Err, Ok, Result, decode_envelope

__all__ = [
    "ScanServiceClient",
    "Ok",
    "Err",
    "Result",
    "decode_envelope",
    "GUARD",
    "SERVICE",
    "TRANSPORT",
]
