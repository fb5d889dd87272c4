"""
Utils Module - Infrastructure Utilities
=======================================

Modules:
    logger: Colored console logging plus JSON error log with rotation
    metrics: Prometheus counters and histograms for runs, tools and quota
    client_factory: httpx and AsyncOpenAI client construction
"""
