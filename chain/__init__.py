"""Collaborators that supply pool state to the planner."""
