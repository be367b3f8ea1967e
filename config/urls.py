# config/urls.py

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Main applications
    path('', include('apps.core.urls')),
    path('workspace/', include('apps.workspace.urls')),
    path('reports/', include('apps.reports.urls')),
]

# Admin titles
admin.site.site_header = 'Orbit Board Admin'
admin.site.site_title = 'Orbit Board'
admin.site.index_title = 'System Administration'
