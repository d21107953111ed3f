"""Adapters that execute engine triggers against live services."""
