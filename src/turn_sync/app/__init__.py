"""Stateful owners: UI state, stream lifecycle, render sync, grouping."""
