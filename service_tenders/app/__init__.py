"""
Tender Listing Service package.

Serves paginated, filterable tender listings from PostgreSQL, fronted by
Redis to absorb read load:
- Filters: untrusted query input normalized into a canonical filter set
- Search: prefix-code, tokenized or full-text predicates
- Caching: versioned keys, a fail-soft store and warm-once population
- Monitoring: per-route latency percentiles, hit rates and query counts

Structure:
- app.main: FastAPI app and routes.
- app.tenders: Cache-aware request pipeline.
- app.caching: Key derivation, cache stores and the warmer.
- app.search: Search mode selection and SQL predicates.
- app.filters: Query parameter parsing.
- app.monitoring: Request monitor.
- app.persistence: asyncpg repository.
"""
