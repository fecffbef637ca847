"""
ASGI config for the billing service.

Only HTTP is served; webhook handling and
checkout are plain request/response endpoints.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
