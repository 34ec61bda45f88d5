"""WSGI config for the Letting Desk triage service."""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'letting_desk.settings')
application = get_wsgi_application()
