"""HTTP layer for the settlement engine."""
