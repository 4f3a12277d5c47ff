import os

from django.core.asgi import get_asgi_application

# set default Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'website.settings')

application = get_asgi_application()
