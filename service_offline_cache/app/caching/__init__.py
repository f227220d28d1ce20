"""
Offline cache worker caching package.

Provides the cache storage boundary (named caches keyed by normalized
request URL), the per-class caching strategies, and the controller that
routes classified requests to them. Eviction is generational only: whole
caches are dropped when their version is no longer current.
"""
