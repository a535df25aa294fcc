"""Digest and encoding primitives shared by the roll writer, reader and verifier."""

__all__: list[str] = [
    "hash_utils",
    "hex_codec",
    "stable_json",
]
