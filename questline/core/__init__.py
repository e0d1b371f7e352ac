"""Infrastructure layer: configuration, logging, persistence, events and locking."""
