"""
Email outreach feature package.

Keeps every layer of the outreach flow co-located: domain models, the
formatter, eligibility rules, conversation reconciliation, collaborator
clients, repositories, the send orchestrator and the API router.
"""
