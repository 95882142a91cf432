"""Test doubles for worldgen tests."""
