"""In-process services for daily room, doctor and visit assignment.

Views and management commands call into these modules; they return
model instances and small dataclasses, never HTTP payloads.
"""
