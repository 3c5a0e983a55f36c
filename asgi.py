"""
asgi.py -- Application assembly for Combiner.

This is the ONLY file that imports from both api/ and web/. It installs the
bundle-serving middleware on the API app without coupling the two layers.
api/main.py knows nothing about web/; web/bundles.py knows nothing about api/.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.bundles import install

# Registered last, so it runs first: bundle requests never reach the routers.
install(app)
