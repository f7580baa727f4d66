"""Quota record persistence.

Every read and write of a user's quota record happens inside a single
store transaction; the rate limiter never touches the record otherwise.
"""
