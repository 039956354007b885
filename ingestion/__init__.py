"""
Ingestion pipeline components.

Modules:
    sources: Source profiles (endpoint, paging, frontier query, extractor)
    http_client: Resilient fetch client (timeout, retry/backoff)
    circuit_breaker: Per-source circuit breaker
    idempotency: Batched natural-key existence check
    reference_resolver: Category code resolution with auto-creation
    scheduler: Incremental unit planning (watermark + lookback)
    aggregator: Unit outcomes, source state and run-level success
    run_history: Persisted run history and stuck-run cleanup
    runner: Orchestrator, ``run_ingestion(...) -> RunReport``
    seed: Reference data for sources and categories

Subpackages:
    extractors: One extractor function per provider schema
    loaders: Batch writer for the records table

Architecture:
    For each source (in parallel), units run sequentially:

    1. Fetch - provider pages for the unit, with retry and circuit breaking
    2. Extract - map the payload onto candidate records, drop thumbnails
    3. Filter - drop candidates whose natural key is already stored
    4. Resolve - map category codes onto ids, auto-creating unknown codes
    5. Write - one atomic multi-row insert per batch

    A failed unit is recorded and skipped; only a source whose starting unit
    cannot be computed fails, and only that makes the run unsuccessful.

Usage:
    from ingestion.runner import run_ingestion
    from ingestion.sources import get_profiles

    report = await run_ingestion(get_profiles(["curiosity"]))
    sys.exit(report.exit_code)
"""

__all__ = [
    "IngestionRunner",
    "run_ingestion",
    "SourceProfile",
    "SOURCE_REGISTRY",
    "get_profiles",
]
