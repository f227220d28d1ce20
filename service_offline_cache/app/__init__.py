"""
Offline cache worker service for the Kontrollitud.ee site.

The worker fronts page requests and decides, per request, whether to answer
from a versioned set of named caches or from the network:
- Classification: bypass / document / asset / default buckets
- Caching: cache storage backends and the per-class strategies
- Lifecycle: install, activate and control messages per worker version

Structure:
- app.main: FastAPI app, proxy route and worker admin routes.
- app.worker: Event dispatcher composing classifier, controller and lifecycle.
- app.adapters: HTTP client for the upstream origin.
- app.caching: Cache storage, strategies and the cache controller.
- app.classification: Request classifier.
- app.lifecycle: Lifecycle state machine and worker registration.
"""
