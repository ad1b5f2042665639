"""HTTP trigger surface for the sync engine."""
