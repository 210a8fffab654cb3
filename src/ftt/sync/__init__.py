"""Synchronization with the shared store: wire records, transports, and the engine."""
