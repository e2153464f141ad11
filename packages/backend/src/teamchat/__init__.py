"""Teamchat: real-time layer for a team collaboration backend.

Threads, messages, reactions, tasks, projects and notes are plain CRUD.
What this package adds on top is the live side: every mutation is
broadcast to the subscribers of its topic and fanned out as
notifications to the people who care about it.
"""

__version__ = "0.1.0"
