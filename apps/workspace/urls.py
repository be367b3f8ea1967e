# apps/workspace/urls.py

from django.urls import path
from . import views

app_name = 'workspace'

urlpatterns = [
    # === PERSONAL TODOS ===
    path('todos/', views.todo_list, name='todo_list'),
    path('todos/add/', views.todo_add, name='todo_add'),
    path('todos/<str:todo_id>/toggle/', views.todo_toggle, name='todo_toggle'),
    path('todos/<str:todo_id>/edit/', views.todo_edit, name='todo_edit'),
    path('todos/<str:todo_id>/delete/', views.todo_delete, name='todo_delete'),

    # === PROJECTS ===
    path('projects/', views.project_list, name='project_list'),
    path('projects/create/', views.project_create, name='project_create'),
    path('projects/<str:project_id>/', views.project_detail, name='project_detail'),
    path('projects/<str:project_id>/update/', views.project_update, name='project_update'),
    path('projects/<str:project_id>/status/', views.project_status, name='project_status'),
    path('projects/<str:project_id>/delete/', views.project_delete, name='project_delete'),

    # === TASKS ===
    path('tasks/', views.task_list, name='task_list'),
    path('tasks/create/', views.task_create, name='task_create'),
    path('tasks/<str:task_id>/update/', views.task_update, name='task_update'),
    path('tasks/<str:task_id>/status/', views.task_status, name='task_status'),
    path('tasks/<str:task_id>/delete/', views.task_delete, name='task_delete'),

    # === NOTIFICATIONS ===
    path('notifications/', views.notification_list, name='notification_list'),
    path('notifications/read/', views.notification_read_selected, name='notification_read_selected'),
    path('notifications/read-all/', views.notification_read_all, name='notification_read_all'),
    path('notifications/delete/', views.notification_delete_selected, name='notification_delete_selected'),
    path('notifications/clear/', views.notification_clear, name='notification_clear'),
    path('notifications/<str:notification_id>/read/', views.notification_read, name='notification_read'),
    path('notifications/<str:notification_id>/delete/', views.notification_delete, name='notification_delete'),
]
