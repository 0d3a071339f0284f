"""Round lifecycle services: payment checks, timed sessions, the score
ledger and threshold-triggered payout.

Imported by HTTP routes and CLI commands, keeping transport concerns
separated from the round rules.
"""
