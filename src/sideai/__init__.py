"""Encrypted local store for tasks, schedule events and reminders."""
