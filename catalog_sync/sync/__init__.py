"""Synchronization engine: reconcilers, chunking, duplicate repair and ledger."""
