"""Shared infrastructure for familycal: time, clocks and exceptions."""
