"""
Approval Kernel

A multi-level, risk-scored, time-boxed approval workflow engine with:
- Deterministic approval chains derived from a risk profile
- Role-gated approve / reject / cancel / escalate transitions
- Optimistic concurrency on every workflow mutation
- Deadline-driven expiry or auto-escalation via a polling sweep
- Read-only response-time and duration statistics
"""

__version__ = "0.1.0"
