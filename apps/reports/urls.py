# apps/reports/urls.py

from django.urls import path
from . import views

app_name = 'reports'

urlpatterns = [
    # APIs for dashboards
    path('api/metrics/', views.api_metrics, name='api_metrics'),
    path('calendar/', views.calendar, name='calendar'),

    # Project exports
    path('projects/<str:project_id>/csv/', views.project_csv, name='project_csv'),
    path('projects/<str:project_id>/xlsx/', views.project_xlsx, name='project_xlsx'),
]
