"""API layer - operator endpoints for the orchestrator."""
