"""
Event worker: runs jobs for audit events in the background.

- checker: atomically claims the oldest eligible audit event
- runner: executes the event's jobs in one transaction and records the outcome
- policy: retry budget, failure backoff and stale-claim reclaim rules
- loop: the polling loop tying checker and runner together
"""
