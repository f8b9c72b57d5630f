"""Per-kind payload decoders used by the keyword dispatcher."""

from .a1111 import parse_a1111_parameters
from .card import decode_base64_json, decode_card_payload, encode_card_envelope
from .workflow import decode_workflow
from .xmp import parse_xmp

__all__ = [
    "decode_base64_json",
    "decode_card_payload",
    "decode_workflow",
    "encode_card_envelope",
    "parse_a1111_parameters",
    "parse_xmp",
]
