"""
ABI Service package for the Move ABI Access Layer.

Serves normalized Move module interfaces fetched from a Sui full node,
behind input validation, bounded retries and a TTL result cache.

Structure:
- app.main: FastAPI app and routes.
- app.config: ABI_* settings.
- app.schemas: HTTP response models.
- app.fetcher: validation, cache, transport, retrying client, orchestrator.
"""
