# backend/wsgi.py
from dds import create_app

app = create_app()
