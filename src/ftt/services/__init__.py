"""Flight Training Tracker services."""
