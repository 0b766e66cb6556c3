"""EU job listing ingestion package.

- `models.py` defines the stored listing schema and the raw candidate shapes.
- `sources/` contains per-source connectors that fetch candidates.
- `extract.py`, `documents.py` and `normalize.py` turn raw content into fields.
- `pipeline.py` runs a source: dedupe, normalize, save, notify.
"""
