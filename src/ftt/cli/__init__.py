"""Command line interface for the Flight Training Tracker."""
