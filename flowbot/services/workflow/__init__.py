"""
Workflow automation engine.

Matches trigger keywords to start sessions, executes graph nodes against the
messaging channel, and resumes halted sessions from the contact's replies.
"""
