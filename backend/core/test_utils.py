"""
Test utilities and factories for creating test data
"""
import random
import string

from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from backend.catalog.models import Item, ItemCategory
from backend.inventory.models import DirectReceipt, FromIssue, Issue, Return, Status
from backend.locations.models import Location
from backend.parties.models import Company, Contractor, Machine

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='QC_USER', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_company(name=None, is_active=True):
        return Company.objects.create(name=name or f'Company_{TestDataFactory.random_string(6)}', is_active=is_active)

    @staticmethod
    def create_contractor(name=None, is_active=True):
        return Contractor.objects.create(name=name or f'Contractor_{TestDataFactory.random_string(6)}', is_active=is_active)

    @staticmethod
    def create_machine(name=None, contractor=None, is_active=True):
        return Machine.objects.create(
            name=name or f'Machine_{TestDataFactory.random_string(6)}',
            contractor=contractor,
            is_active=is_active
        )

    @staticmethod
    def create_location(name=None, company=None, is_active=True):
        return Location.objects.create(
            name=name or f'Location_{TestDataFactory.random_string(6)}',
            company=company,
            is_active=is_active
        )

    @staticmethod
    def create_category(name=None):
        """Create a test item category"""
        return ItemCategory.objects.create(name=name or f'Category_{TestDataFactory.random_string(6)}')

    @staticmethod
    def create_item(name=None, serial_number=None, category=None, status=Item.STATUS_AVAILABLE, is_active=True, image=''):
        """Create a test item"""
        if not name:
            name = f'Item_{TestDataFactory.random_string(6)}'
        if serial_number is None:
            serial_number = f'SN-{TestDataFactory.random_string(8).upper()}'
        return Item.objects.create(
            name=name,
            serial_number=serial_number,
            category=category,
            status=status,
            is_active=is_active,
            image=image
        )

    @staticmethod
    def create_status(name=None):
        """Create a return status label"""
        return Status.objects.create(name=name or f'Status_{TestDataFactory.random_string(6)}')

    @staticmethod
    def create_issue(item=None, user=None, issue_no=None, is_returned=False, **context):
        """
        Insert an issue row directly, bypassing the orchestrator.

        The item's status is left untouched; use the services for consistent state.
        """
        item = item or TestDataFactory.create_item()
        user = user or TestDataFactory.create_user()
        return Issue.objects.create(
            issue_no=issue_no or Issue.objects.generate_issue_no(),
            item=item,
            issued_by=user,
            is_returned=is_returned,
            **context
        )

    @staticmethod
    def create_return(issue=None, item=None, user=None, condition=Return.CONDITION_OK, return_image='items/test/inward/test.jpg', **kwargs):
        """Insert a return row directly, from an issue or as a direct receipt"""
        provenance = FromIssue(issue.id) if issue is not None else DirectReceipt((item or TestDataFactory.create_item()).id)
        return Return.objects.create(
            provenance=provenance,
            return_code=kwargs.pop('return_code', None) or Return.objects.generate_return_code(),
            condition=condition,
            returned_by=user or TestDataFactory.create_user(),
            return_image=return_image,
            **kwargs
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
