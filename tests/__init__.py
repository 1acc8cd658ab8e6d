"""Tests for parascenario."""
