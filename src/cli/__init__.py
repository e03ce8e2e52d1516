"""Cadence command line interface."""
