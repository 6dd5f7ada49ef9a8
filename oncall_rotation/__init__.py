"""Triage rotation service: sprint-based on-call assignment and notifications."""
