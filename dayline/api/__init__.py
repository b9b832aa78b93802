"""
HTTP surface for dayline (FastAPI).

Components:
- main.py - App factory and service wiring
- routes.py - OAuth, events, sync and calendar endpoints
"""
