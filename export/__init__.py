"""Plan export: the plan file and the operator's execution scripts."""
