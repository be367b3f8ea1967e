# apps/core/management/commands/init_admin.py

from getpass import getpass

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.core.auth_service import AuthError, AuthErrorKind, auth_service
from apps.store.exceptions import StoreError


class Command(BaseCommand):
    help = 'Creates the first administrator account'

    def add_arguments(self, parser):
        parser.add_argument('--name', help='Full name of the administrator')
        parser.add_argument('--email', help='Email used to sign in')
        parser.add_argument('--password', help='Password (prompted when omitted)')

    def handle(self, *args, **options):
        """
        Creates the admin through the privileged path of the auth service
        """
        name = options['name'] or input('Name: ').strip()
        email = options['email'] or input('Email: ').strip()
        password = options['password'] or getpass('Password: ')

        if not name or not email:
            raise CommandError('Name and email are required')

        self.stdout.write('🛡️ Creating administrator...')

        try:
            account = auth_service.create_admin(name, email, password)
        except ValidationError as e:
            raise CommandError(' '.join(e.messages))
        except AuthError as e:
            if e.kind == AuthErrorKind.EMAIL_ALREADY_IN_USE:
                # The existing account keeps whatever role it has
                self.stdout.write(
                    self.style.WARNING(f'⚠️  {email} is already registered; role left untouched.')
                )
                return
            raise CommandError(e.message)
        except StoreError as e:
            raise CommandError(f'Account created but the profile could not be written: {e}')

        self.stdout.write(
            self.style.SUCCESS(
                f'✅ Administrator created!\n'
                f'  • Email: {account.email}\n'
                f'  • Id: {account.uid}\n'
            )
        )
