"""
Attendance Service - Face Tracking and Attendance Marking

Tracks faces across video frames, matches them against enrolled
embeddings and records each enrollee present at most once per session.
"""

__version__ = "1.0.0"
__author__ = "Attendance Service Team"
