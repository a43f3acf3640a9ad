"""Test suite for the match monitor."""
