"""Tests for the signature workflow service (mongomock store, frozen clock)."""
