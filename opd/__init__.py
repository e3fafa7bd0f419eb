"""Outpatient department app.

Tracks which room each doctor sits in today, which doctor owns the
patients placed in that room, and the lifecycle of each day's visit.
"""
