# apps/core/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models

ROLE_ADMIN = 'admin'
ROLE_MANAGER = 'manager'
ROLE_USER = 'user'

ROLE_CHOICES = [
    (ROLE_ADMIN, 'Administrator'),
    (ROLE_MANAGER, 'Manager'),
    (ROLE_USER, 'User'),
]

MANAGER_ROLES = (ROLE_MANAGER, ROLE_ADMIN)

# === Document store collections ===

USERS = 'users'
PROJECTS = 'projects'
TASKS = 'tasks'
PERSONAL_TODOS = 'personalTodos'
NOTIFICATIONS = 'notifications'


class Account(AbstractUser):
    """
    Authentication identity (credentials only)

    Name, email and role shown in the application live in the profile
    document users/<uid> of the document store. The email doubles as
    username so people sign in with it.
    """

    email = models.EmailField(unique=True)

    class Meta:
        db_table = 'account'

    @property
    def uid(self) -> str:
        """Identity id used as key of the profile document"""
        return str(self.pk)

    def __str__(self):
        return self.email or self.username
