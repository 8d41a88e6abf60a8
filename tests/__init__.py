"""Tests for phototimeline."""
