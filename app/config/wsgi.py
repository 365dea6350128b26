"""
WSGI config for the messaging backend.

The realtime socket needs ASGI (config/asgi.py); a WSGI server can only
serve the REST API and admin.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
