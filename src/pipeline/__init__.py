"""
Pipeline Package
================
Async services around the analytics engines.

Modules:
  result_cache     - TTL cache with identity invalidation
  recompute        - debounced per-user batch recomputation
  summary_builder  - short insight text for UI cards
  migrations       - event store schema bootstrap and audit
"""
