"""Roll (manifest) format: models, writer, reader and verifier.

A roll lists files by relative path, size and SHA-256, and carries a digest
of itself so a receiver can reject a damaged roll before trusting any of it.
"""

__all__: list[str] = [
    "builder",
    "models",
    "parser",
    "records",
    "verifier",
    "workers",
]
