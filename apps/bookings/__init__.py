"""Bookings app package.

The booking model and its lifecycle: creation with a fee snapshot and a
payment hold, cancellation, check-in and check-out that drive the escrow
timers, plus the admin booking oversight API. Status changes go through
``apps.bookings.domain.lifecycle``.
"""
