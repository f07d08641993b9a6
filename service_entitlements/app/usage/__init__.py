"""
Usage ledger package.

The evaluator only reads a ``UsageSnapshot``; counting and time windows
belong to the ledger implementations here:

- ledger: ``UsageLedger`` protocol and the process-local ``InMemoryUsageLedger``.
- redis_ledger: ``RedisUsageLedger`` for counters shared between replicas.
"""
