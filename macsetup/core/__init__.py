"""macsetup core — models, persistence, services."""
