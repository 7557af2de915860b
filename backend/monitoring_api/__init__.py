"""
ESP32 Monitoring Backend
========================

This is the Python package for the backend API.

HOW IT'S ORGANIZED:
------------------
- models/     = Data structures (what does a reading / pump event look like?)
- services/   = Workers (store readings, track pump state, keep the registry)
- routers/    = API endpoints (the doors into our app)
- database.py = Schema and the transactional gateway to the database
- errors.py   = What can go wrong, and which HTTP status it maps to
- main.py     = Puts it all together and starts the server
"""

__version__ = "1.0.0"
