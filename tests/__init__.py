"""Tests for Content-Experiments."""
