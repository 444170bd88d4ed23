"""Fireboard exporter command line application."""
