# backend/wsgi.py
# FLASK_APP target for the flask CLI and WSGI servers.
from frozengoods import create_app

app = create_app()
