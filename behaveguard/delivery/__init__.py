"""Snapshot delivery: in-memory queue, overflow policies and HTTP transport."""
