"""ASGI config for the Stayza project.

This module exposes the ASGI application for ASGI servers such as uvicorn
or daphne. The API is plain request/response, so this is the stock Django
handler pointed at our settings package.
"""

import os
from django.core.asgi import get_asgi_application  # type: ignore

# Use the development settings by default. Production servers should set
# DJANGO_SETTINGS_MODULE accordingly.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.dev')

application = get_asgi_application()
