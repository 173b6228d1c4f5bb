"""
Historical bar ingestion, price-sample schemas, and the in-memory series.

Reads the minute-bar CSV source, validates every record, and builds the
gap-free lookup used by the simulated gateway.
"""
