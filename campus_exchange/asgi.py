"""
ASGI config for campus_exchange project.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campus_exchange.settings')

application = get_asgi_application()
