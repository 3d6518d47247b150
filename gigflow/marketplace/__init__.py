"""
Marketplace Core

Components:
- gig_store / bid_store / notification_store / user_store: persistence with
  conditional status transitions
- hire_coordinator: the multi-row hire transition
- bidding: bid submission with owner notification
- capabilities: startup detection of transaction support
- errors: error hierarchy mapped to HTTP statuses
"""
