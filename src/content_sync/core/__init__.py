"""Core sync engine: versioning, platform client and sync workflow."""
