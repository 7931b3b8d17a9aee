"""Properties app package.

Property listings, their availability calendar and public search.
"""
