"""
Task Manager API package.

FastAPI backend for a task list: CRUD over a relational store with a
read-through cache in front of the read paths. Build the application with
tasklist_api.main.create_app; tasklist_api.client talks to a running server.
"""

__version__ = "1.0.0"
