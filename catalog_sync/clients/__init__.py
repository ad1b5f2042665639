"""Clients for the two external catalog feeds."""
