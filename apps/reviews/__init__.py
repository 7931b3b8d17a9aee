"""Reviews app package: guest ratings for completed stays."""
