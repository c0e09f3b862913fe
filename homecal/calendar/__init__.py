"""Event models, recurrence parsing/expansion and date helpers."""
