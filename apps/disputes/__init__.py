"""Disputes app package.

Guests contest the room fee during the guest dispute window after check-in;
realtors claim against the security deposit during the realtor window after
check-out. The counterparty accepts or escalates, platform admins decide
escalated cases, and the agreed outcome is executed against escrow.
"""
