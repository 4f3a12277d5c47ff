import os

from django.core.wsgi import get_wsgi_application

# set default Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'website.settings')

application = get_wsgi_application()
