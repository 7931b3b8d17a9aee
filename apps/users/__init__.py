"""Users app package.

This module initializes the users app: a custom user model with guest,
realtor and admin roles, realtor profiles with admin approval and payout
bank details, JWT authentication endpoints and the admin oversight API
for realtors. Use ``apps.users.models.CustomUser`` as the
AUTH_USER_MODEL throughout the project.
"""
