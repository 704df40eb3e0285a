"""Domain services: calendar, goal evaluation, streaks, tracking, sync and snapshots."""
