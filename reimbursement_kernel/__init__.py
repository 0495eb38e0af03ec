"""
Reimbursement Kernel

The approval-workflow core of an institutional reimbursement portal:
- Structured, collision-free application identifiers per bucket
- A closed status state machine (Coordinator -> HOD -> Principal -> Accounts)
- Role authorization checked independently of transition legality
- Append-only review history with optimistic per-request versioning
"""

__version__ = "0.1.0"
