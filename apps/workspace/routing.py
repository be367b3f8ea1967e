# apps/workspace/routing.py

from django.urls import re_path
from . import consumers

# WebSocket routes of the workspace app
websocket_urlpatterns = [
    # Live list of the signed-in user: todos, tasks, projects or notifications
    re_path(r'ws/lists/(?P<kind>todos|tasks|projects|notifications)/$', consumers.LiveListConsumer.as_asgi()),

    # Live task list of one project
    re_path(r'ws/projects/(?P<project_id>[\w-]+)/tasks/$', consumers.ProjectTasksConsumer.as_asgi()),
]
