"""
WSGI config for storyhub project.
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'storyhub.settings')
application = get_wsgi_application()
