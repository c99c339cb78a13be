"""Recurrence, logical-event synchronization and reminder scheduling."""
