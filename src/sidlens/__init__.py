"""sidlens: Snort session analytics over day-sharded Elasticsearch indices."""

__version__ = "0.1.0"
