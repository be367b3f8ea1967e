# apps/core/forms.py

from django import forms

from .models import ROLE_CHOICES

INPUT_CLASS = 'form-input w-full px-4 py-2 border rounded-lg'


class LoginForm(forms.Form):
    """Sign-in form"""

    email = forms.EmailField(
        label='Email',
        widget=forms.EmailInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'you@company.com',
            'autofocus': True
        })
    )

    password = forms.CharField(
        label='Password',
        strip=False,
        widget=forms.PasswordInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'Your password'
        })
    )


class RegistrationForm(forms.Form):
    """
    Self-registration form

    Only shape checks here; password length and confirmation are checked
    by the authentication service so every entry point shares them.
    """

    name = forms.CharField(
        label='Full name',
        max_length=150,
        widget=forms.TextInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'Ada Lovelace'
        })
    )

    email = forms.CharField(
        label='Email',
        max_length=254,
        widget=forms.EmailInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'you@company.com'
        })
    )

    password = forms.CharField(
        label='Password',
        strip=False,
        widget=forms.PasswordInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'At least 6 characters'
        })
    )

    confirm_password = forms.CharField(
        label='Confirm password',
        strip=False,
        widget=forms.PasswordInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'Type the password again'
        })
    )


class RoleForm(forms.Form):
    """Role change issued by an administrator"""

    role = forms.ChoiceField(choices=ROLE_CHOICES)
