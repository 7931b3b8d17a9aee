"""Finances app package.

Payments through the external gateway, the escrow ledger, realtor and
platform wallets, cancellation refunds and realtor withdrawals. Money
moves out of escrow in the periodic tasks defined in ``tasks``.
"""
