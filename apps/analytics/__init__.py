"""Analytics app package: platform-wide figures for admins."""
