"""Scheduling core.

Every function here is pure: it takes tasks, an anchor date and (optionally)
overrides, and returns new values. Nothing is cached between calls, so the
caller may invoke it on every pointer move while a task is being dragged.
"""
