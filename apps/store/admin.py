# apps/store/admin.py

import json

from django.contrib import admin
from django.utils.html import format_html

from .models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    """Read-mostly admin to inspect stored documents"""

    list_display = ['doc_id', 'collection', 'data_summary']
    list_filter = ['collection']
    search_fields = ['doc_id']
    ordering = ['collection', '-id']

    def data_summary(self, obj):
        """First keys of the document, for quick inspection"""
        preview = json.dumps(obj.data, ensure_ascii=False)
        if len(preview) > 80:
            preview = preview[:77] + '...'
        return format_html('<code>{}</code>', preview)

    data_summary.short_description = 'Data'
