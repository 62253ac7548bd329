"""
shopspine - recurring job scheduling and dispatch for a multi-tenant
commerce back-office.

- shopspine.core: ambient stack (errors, logging, settings, persistence)
- shopspine.scheduling: catalog, store, evaluator, guard, router, worker, sweep
- shopspine.retry: failed work items and the retry sweep
- shopspine.notifications: delivery ledger and Slack dispatch
"""

__version__ = "0.1.0"
