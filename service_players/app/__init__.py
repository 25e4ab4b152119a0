"""
Player Cache service package.

Fronts the chess federation's rate-limited member API and keeps a
period-versioned copy of every player snapshot it fetches:
- Historical rating months are cached forever
- The current month is cached for a configurable TTL
- Batches are resolved concurrently, tolerating per-player failures

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.players: Cache-aside orchestration and models.
- app.persistence: PostgreSQL cache store.
- app.adapters: Upstream HTTP client.
- app.ratelimit: Token-bucket limiter for upstream calls.
- app.maintenance: Expired row sweeper.
- app.periods: Rating period helpers.
"""
