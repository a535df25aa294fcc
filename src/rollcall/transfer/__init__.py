"""Handing a rolled batch of files to a wormhole entry folder."""

__all__: list[str] = ["orchestrator"]
