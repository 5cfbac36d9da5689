"""Terminal rendering of plans and runs."""
