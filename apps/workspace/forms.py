# apps/workspace/forms.py

from django import forms

from apps.core.mappers import PRIORITIES, PROJECT_STATUSES, TASK_STATUSES
from apps.core.utils import split_ids

PRIORITY_CHOICES = [(value, value.capitalize()) for value in PRIORITIES]
TASK_STATUS_CHOICES = [(value, value.replace('-', ' ').capitalize()) for value in TASK_STATUSES]
PROJECT_STATUS_CHOICES = [(value, value.replace('-', ' ').capitalize()) for value in PROJECT_STATUSES]


class IdListField(forms.Field):
    """List of document ids, from repeated keys or a comma separated string"""

    widget = forms.SelectMultiple

    def to_python(self, value):
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        return split_ids(value)


class PartialForm(forms.Form):
    """
    Form used for partial updates

    changed_fields() keeps only the fields present in the submitted data,
    so a missing key never overwrites a stored value.
    """

    def changed_fields(self):
        present = set(self.data.keys())
        return {name: value for name, value in self.cleaned_data.items() if name in present}


class PersonalTodoForm(PartialForm):
    # Title presence is checked by the controller
    title = forms.CharField(max_length=200, required=False)
    description = forms.CharField(required=False)
    priority = forms.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    due_date = forms.DateTimeField(required=False)


class ProjectForm(PartialForm):
    name = forms.CharField(max_length=200, required=False)
    description = forms.CharField(required=False)
    status = forms.ChoiceField(choices=PROJECT_STATUS_CHOICES, required=False)
    start_date = forms.DateTimeField(required=False)
    end_date = forms.DateTimeField(required=False)


class TaskForm(PartialForm):
    title = forms.CharField(max_length=200, required=False)
    description = forms.CharField(required=False)
    project_id = forms.CharField(max_length=64, required=False)
    assigned_to = IdListField(required=False)
    priority = forms.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    status = forms.ChoiceField(choices=TASK_STATUS_CHOICES, required=False)
    start_date = forms.DateTimeField(required=False)
    end_date = forms.DateTimeField(required=False)
    due_date = forms.DateTimeField(required=False)


class TaskStatusForm(forms.Form):
    status = forms.ChoiceField(choices=TASK_STATUS_CHOICES)


class ProjectStatusForm(forms.Form):
    status = forms.ChoiceField(choices=PROJECT_STATUS_CHOICES)


class SelectionForm(forms.Form):
    ids = IdListField()
