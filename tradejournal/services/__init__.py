"""Journal services: aggregation, sync, undo, step-up and the journal facade."""
