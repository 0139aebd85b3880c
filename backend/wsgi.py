# backend/wsgi.py
from savdo import create_app

app = create_app()
