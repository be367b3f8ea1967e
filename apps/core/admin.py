# apps/core/admin.py

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html

from apps.store.client import store

from .mappers import map_user
from .models import USERS, Account
from .utils import role_badge


@admin.register(Account)
class AccountAdmin(BaseUserAdmin):
    """Admin for authentication accounts; the role comes from the profile document"""

    list_display = [
        'email', 'profile_name', 'role_badge',
        'is_active', 'date_joined'
    ]
    list_filter = ['is_staff', 'is_active', 'date_joined']
    search_fields = ['username', 'email']
    ordering = ['-date_joined']

    def _profile(self, obj):
        document = store.get(USERS, obj.uid)
        return map_user(document.id, document.data) if document.exists else None

    def profile_name(self, obj):
        profile = self._profile(obj)
        return profile.name if profile else '-'

    profile_name.short_description = 'Name'

    def role_badge(self, obj):
        """Role with a colored badge"""
        profile = self._profile(obj)
        if profile is None:
            return '-'
        badge = role_badge(profile.role)
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 3px 8px; border-radius: 4px; font-size: 11px;">{}</span>',
            badge['color'], badge['role']
        )

    role_badge.short_description = 'Role'
