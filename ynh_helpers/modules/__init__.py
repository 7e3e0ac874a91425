"""Helper modules: each one ships an index.json with its metadata and config."""
