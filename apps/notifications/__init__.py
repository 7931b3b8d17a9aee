"""Notifications app package.

Delivers email and in-app notifications. Domain events published after
commit are routed to the handlers in ``handlers.py``.
"""
