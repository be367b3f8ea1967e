# apps/core/urls.py

from django.urls import path
from . import views

app_name = 'core'

urlpatterns = [
    # === AUTHENTICATION ===
    path('register/', views.register_view, name='register'),
    path('login/', views.login_view, name='login'),
    path('logout/', views.logout_view, name='logout'),
    path('me/', views.me_view, name='me'),

    # === USERS ADMINISTRATION ===
    path('users/', views.users_list, name='users'),
    path('users/<str:user_id>/role/', views.change_user_role, name='change_role'),
    path('users/<str:user_id>/delete/', views.delete_user, name='delete_user'),

    # === MONITORING ===
    path('health/', views.health_check, name='health'),
]
