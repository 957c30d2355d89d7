"""HTTP API for the mystery package generator."""
