"""Service layer for the mystery package generator.

Services are plain functions taking a Session; routes are transport-only
and call exactly one service function.
"""
