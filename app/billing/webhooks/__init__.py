"""
Inbound Stripe webhook handling.

Modules:
- verifier: Signature verification and event parsing
- handlers: Event type registry and subscription lifecycle handlers
- processor: Ledger-backed processing shared by the view and tasks
- views: HTTP endpoint
"""
