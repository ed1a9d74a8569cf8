"""
focusloop - adaptive mastery tracking and focus-session orchestration.

Decides what a learner should practice next, how hard it should be, how a
graded answer changes long-term retention, and how a bounded practice
session moves through loops of rising or falling challenge.
"""

__version__ = "0.1.0"
