"""Cadence: adaptive review-scheduling engine."""
