"""Job persistence and execution services."""
