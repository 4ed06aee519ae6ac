"""ASGI config for the equipment custody project."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "custody.settings")

application = get_asgi_application()
