# apps/store/models.py

from django.db import models


class Document(models.Model):
    """
    A single schema-less document inside a named collection

    The document id is assigned by the store on creation (or given
    explicitly for keyed collections such as users) and never changes.
    """

    collection = models.CharField(max_length=100, db_index=True)
    doc_id = models.CharField(max_length=64)
    data = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'document'
        ordering = ['id']
        unique_together = ['collection', 'doc_id']

    def __str__(self):
        return f"{self.collection}/{self.doc_id}"
