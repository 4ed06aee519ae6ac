"""WSGI config for the equipment custody project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "custody.settings")

application = get_wsgi_application()
