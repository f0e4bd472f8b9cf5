"""
asgi.py -- ASGI entry point for stormstarter.

Settings come from the environment (see core/config.py). Route discovery
runs here, at import time, so uvicorn workers start with a complete
dispatch table.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import create_app

app = create_app()
