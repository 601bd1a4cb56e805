"""Tests for pyrobocam."""
