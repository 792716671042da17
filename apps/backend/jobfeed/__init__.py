"""Job feed synchronization and advanced matching backend."""
