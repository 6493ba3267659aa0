"""
Tests for core utilities: sequential codes, storage paths, error taxonomy,
audit logging and authentication endpoints
"""
import re
from unittest import mock

from django.test import TestCase, SimpleTestCase, RequestFactory, override_settings
from rest_framework import status

from backend.core.codes import next_code, generate_code, OUTWARD_PREFIX
from backend.core.exceptions import (
    Conflict, InvalidState, NotFound, ValidationError, is_unique_violation, retry_on_conflict,
)
from backend.core.models import AuditLog
from backend.core.storage import sanitize_serial_for_path, inward_image_path, item_master_image_path
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log, get_client_ip
from backend.inventory.models import Issue
from backend.parties.models import Company

CODE_PATTERN = re.compile(r'^[A-Z]+-\d{3,}$')


class NextCodeTests(SimpleTestCase):
    def test_first_code(self):
        self.assertEqual(next_code('OUTWARD', 0), 'OUTWARD-001')

    def test_padding(self):
        self.assertEqual(next_code('INWARD', 41), 'INWARD-042')
        self.assertEqual(next_code('COM', 99), 'COM-100')

    def test_grows_past_three_digits(self):
        self.assertEqual(next_code('OUTWARD', 999), 'OUTWARD-1000')
        self.assertRegex(next_code('OUTWARD', 12345), CODE_PATTERN)


class GenerateCodeTests(TestCase):
    def test_reference_codes_assigned_on_save(self):
        first = TestDataFactory.create_company()
        second = TestDataFactory.create_company()
        self.assertEqual(first.code, 'COM-001')
        self.assertEqual(second.code, 'COM-002')
        self.assertEqual(TestDataFactory.create_contractor().code, 'CTR-001')
        self.assertEqual(TestDataFactory.create_category().code, 'CAT-001')

    def test_explicit_code_is_kept(self):
        company = Company.objects.create(name='Acme', code='ACME-HQ')
        self.assertEqual(company.code, 'ACME-HQ')

    def test_skips_codes_already_taken(self):
        """A row created out of order must not make the next code collide"""
        Company.objects.create(name='Manual', code='COM-002')
        self.assertEqual(Company.next_code(), 'COM-003')
        company = TestDataFactory.create_company()
        self.assertEqual(company.code, 'COM-003')

    def test_count_based_after_gap(self):
        user = TestDataFactory.create_user()
        item = TestDataFactory.create_item()
        TestDataFactory.create_issue(item=item, user=user, issue_no='OUTWARD-005')
        # one row -> next is 002 regardless of the gap
        self.assertEqual(generate_code(Issue, 'issue_no', OUTWARD_PREFIX), 'OUTWARD-002')


class StorageTests(SimpleTestCase):
    def test_sanitize_serial(self):
        self.assertEqual(sanitize_serial_for_path('  AB/12:34  '), 'AB_12_34')
        self.assertEqual(sanitize_serial_for_path('a  b'), 'a_b')
        self.assertEqual(sanitize_serial_for_path(''), 'unknown')
        self.assertEqual(sanitize_serial_for_path(None), 'unknown')

    def test_paths(self):
        self.assertEqual(inward_image_path('SN 1', 'x.jpg'), 'items/SN_1/inward/x.jpg')
        self.assertEqual(item_master_image_path('SN1', 'x.jpg'), 'items/SN1/x.jpg')


class ErrorTaxonomyTests(SimpleTestCase):
    def test_kinds_and_status_codes(self):
        self.assertEqual((NotFound().kind, NotFound.status_code), ('not_found', 404))
        self.assertEqual((InvalidState().kind, InvalidState.status_code), ('invalid_state', 400))
        self.assertEqual((Conflict().kind, Conflict.status_code), ('conflict', 409))
        self.assertEqual((ValidationError().kind, ValidationError.status_code), ('validation_error', 400))

    def test_message(self):
        self.assertEqual(InvalidState('already returned').message, 'already returned')

    def test_is_unique_violation(self):
        self.assertTrue(is_unique_violation(Exception('UNIQUE constraint failed: issues.issue_no')))
        self.assertTrue(is_unique_violation(Exception('duplicate key value violates unique constraint "x"')))
        self.assertFalse(is_unique_violation(Exception('NOT NULL constraint failed')))


class RetryOnConflictTests(SimpleTestCase):
    def test_retries_until_success(self):
        calls = mock.Mock(side_effect=[Conflict('race'), Conflict('race'), 'done'])

        @retry_on_conflict(attempts=3)
        def unit_of_work():
            return calls()

        self.assertEqual(unit_of_work(), 'done')
        self.assertEqual(calls.call_count, 3)

    def test_gives_up_after_attempts(self):
        calls = mock.Mock(side_effect=Conflict('race'))

        @retry_on_conflict(attempts=2)
        def unit_of_work():
            return calls()

        with self.assertRaises(Conflict):
            unit_of_work()
        self.assertEqual(calls.call_count, 2)

    def test_other_errors_not_retried(self):
        calls = mock.Mock(side_effect=InvalidState('nope'))

        @retry_on_conflict(attempts=3)
        def unit_of_work():
            return calls()

        with self.assertRaises(InvalidState):
            unit_of_work()
        self.assertEqual(calls.call_count, 1)

    @override_settings(LEDGER_CONFLICT_RETRIES=5)
    def test_default_attempts_from_settings(self):
        calls = mock.Mock(side_effect=Conflict('race'))

        @retry_on_conflict()
        def unit_of_work():
            return calls()

        with self.assertRaises(Conflict):
            unit_of_work()
        self.assertEqual(calls.call_count, 5)


class AuditLogTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.factory = RequestFactory()

    def test_create_audit_log_from_request(self):
        request = self.factory.post('/api/v1/issues/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')
        request.user = self.user
        log = create_audit_log(
            request=request,
            action='outward_create',
            model_name='Issue',
            object_id=1,
            object_reference='OUTWARD-001',
            changes={'item_id': 1}
        )
        self.assertIsNotNone(log)
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.object_id, '1')
        self.assertEqual(log.ip_address, '10.0.0.1')

    def test_missing_fields_skipped(self):
        self.assertIsNone(create_audit_log(user=self.user, action='create'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_get_client_ip_falls_back_to_remote_addr(self):
        request = self.factory.get('/')
        self.assertEqual(get_client_ip(request), '127.0.0.1')
        self.assertIsNone(get_client_ip(None))


class AuthEndpointTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user(username='qc_manager', password='secret123', role='QC_MANAGER')
        self.client = AuthenticatedAPIClient()

    def test_login_returns_tokens(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'qc_manager', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'qc_manager', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_capabilities(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], 'QC_MANAGER')
        self.assertFalse(response.data['is_admin'])
        self.assertTrue(response.data['can_manage_inward'])

    def test_audit_logs_scoped_to_user(self):
        other = TestDataFactory.create_user()
        create_audit_log(user=self.user, action='create', model_name='Item', object_id='1')
        create_audit_log(user=other, action='create', model_name='Item', object_id='2')
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['object_id'] for row in response.data], ['1'])
