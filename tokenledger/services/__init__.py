"""Token counting and per-stage usage accounting services."""
