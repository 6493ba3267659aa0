"""
Tests for the issue / return ledgers, the lifecycle services, the ledger
query engine and the ledger endpoints
"""
import re
from unittest import mock

from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.http import QueryDict
from django.test import TestCase, SimpleTestCase, override_settings
from rest_framework import status

from backend.catalog.models import Item, ItemQuerySet
from backend.core.exceptions import Conflict, InvalidState, NotFound, ValidationError
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory import services
from backend.inventory.filters import (
    TransactionFilters, all_of, any_of, build_issue_predicate, build_return_predicate, values_in,
)
from backend.inventory.models import DirectReceipt, FromIssue, Issue, IssueQuerySet, Return
from backend.inventory.serializers import ReturnUpdateSerializer

CODE_PATTERN = re.compile(r'^[A-Z]+-\d{3,}$')
IMAGE = 'items/SN/inward/photo.jpg'

IN_MEMORY_STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}


def assert_ledger_consistent(testcase):
    """Every item is ISSUED exactly when it has one open issue"""
    for item in Item.objects.all():
        open_issues = Issue.objects.filter(item=item, is_returned=False).count()
        testcase.assertLessEqual(open_issues, 1, f"{item} has {open_issues} open issues")
        testcase.assertEqual(item.status == Item.STATUS_ISSUED, open_issues == 1, f"{item} is {item.status}")


class LifecycleScenarioTests(TestCase):
    """Issue, return, second return, missing receipt and search, end to end"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.item = TestDataFactory.create_item(name='Torque wrench')
        self.missing_item = TestDataFactory.create_item(name='Feeler gauge', status=Item.STATUS_MISSING)

    def test_full_lifecycle(self):
        issue = services.create_issue(self.item.id, self.user)
        self.assertEqual(issue.issue_no, 'OUTWARD-001')
        self.assertFalse(issue.is_returned)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_ISSUED)
        assert_ledger_consistent(self)

        inward = services.create_return(issue.id, 'OK', self.user, IMAGE)
        self.assertEqual(inward.return_code, 'INWARD-001')
        self.assertEqual(inward.provenance, FromIssue(issue.id))
        self.assertTrue(Issue.objects.find_by_id(issue.id).is_returned)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)
        assert_ledger_consistent(self)

        with self.assertRaises(InvalidState):
            services.create_return(issue.id, 'OK', self.user, IMAGE)
        self.assertEqual(Return.objects.count(), 1)

        received = services.receive_missing_item(self.missing_item.id, 'Damaged', self.user, IMAGE)
        self.assertEqual(received.return_code, 'INWARD-002')
        self.assertIsNone(received.issue_id)
        self.assertEqual(received.item_id, self.missing_item.id)
        self.assertEqual(received.provenance, DirectReceipt(self.missing_item.id))
        self.missing_item.refresh_from_db()
        self.assertEqual(self.missing_item.status, Item.STATUS_AVAILABLE)
        assert_ledger_consistent(self)

        results = list(Return.objects.filtered(TransactionFilters(search='OUTWARD-001')))
        self.assertEqual(results, [inward])


class CreateIssueTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.category = TestDataFactory.create_category()
        self.item = TestDataFactory.create_item(category=self.category)
        self.company = TestDataFactory.create_company()
        self.contractor = TestDataFactory.create_contractor()
        self.location = TestDataFactory.create_location(company=self.company)
        self.machine = TestDataFactory.create_machine(contractor=self.contractor)

    def test_issue_with_context(self):
        issue = services.create_issue(
            self.item.id, self.user,
            company_id=self.company.id, contractor_id=self.contractor.id,
            machine_id=self.machine.id, location_id=self.location.id,
            category_id=self.category.id, issued_to='  R. Sharma ', remarks='Line 3',
        )
        self.assertEqual(issue.company, self.company)
        self.assertEqual(issue.machine, self.machine)
        self.assertEqual(issue.issued_to, 'R. Sharma')
        self.assertEqual(issue.issued_by, self.user)
        self.assertRegex(issue.issue_no, CODE_PATTERN)

    def test_item_not_found(self):
        with self.assertRaises(NotFound):
            services.create_issue(9999, self.user)

    def test_item_not_available(self):
        for item_status in (Item.STATUS_ISSUED, Item.STATUS_MISSING):
            with self.subTest(status=item_status):
                item = TestDataFactory.create_item(status=item_status)
                with self.assertRaises(InvalidState):
                    services.create_issue(item.id, self.user)
        self.assertEqual(Issue.objects.count(), 0)

    def test_inactive_item(self):
        item = TestDataFactory.create_item(is_active=False)
        with self.assertRaises(InvalidState):
            services.create_issue(item.id, self.user)

    def test_category_mismatch(self):
        other = TestDataFactory.create_category()
        with self.assertRaises(ValidationError):
            services.create_issue(self.item.id, self.user, category_id=other.id)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)

    def test_unknown_context_reference(self):
        with self.assertRaises(NotFound):
            services.create_issue(self.item.id, self.user, company_id=9999)

    def test_inactive_context_reference(self):
        company = TestDataFactory.create_company(is_active=False)
        with self.assertRaises(InvalidState):
            services.create_issue(self.item.id, self.user, company_id=company.id)

    def test_location_must_belong_to_company(self):
        other_location = TestDataFactory.create_location(company=TestDataFactory.create_company())
        with self.assertRaises(ValidationError):
            services.create_issue(self.item.id, self.user, company_id=self.company.id, location_id=other_location.id)

    def test_machine_must_belong_to_contractor(self):
        other_machine = TestDataFactory.create_machine(contractor=TestDataFactory.create_contractor())
        with self.assertRaises(ValidationError):
            services.create_issue(self.item.id, self.user, contractor_id=self.contractor.id, machine_id=other_machine.id)

    def test_second_issue_of_same_item_rejected(self):
        services.create_issue(self.item.id, self.user)
        with self.assertRaises(InvalidState):
            services.create_issue(self.item.id, self.user)
        self.assertEqual(Issue.objects.count(), 1)
        assert_ledger_consistent(self)

    def test_failed_status_write_leaves_no_issue(self):
        with mock.patch.object(ItemQuerySet, 'set_status', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                services.create_issue(self.item.id, self.user)
        self.assertEqual(Issue.objects.count(), 0)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)

    def test_lost_status_race_is_retried(self):
        """A compare-and-set miss raises Conflict and the whole unit re-runs"""
        real_set_status = ItemQuerySet.set_status
        calls = {'count': 0}

        def flaky_set_status(queryset, item_id, new_status, expected=None):
            calls['count'] += 1
            if calls['count'] == 1:
                return 0
            return real_set_status(queryset, item_id, new_status, expected=expected)

        with mock.patch.object(ItemQuerySet, 'set_status', flaky_set_status):
            issue = services.create_issue(self.item.id, self.user)

        self.assertEqual(calls['count'], 2)
        self.assertEqual(Issue.objects.count(), 1)
        self.assertEqual(issue.issue_no, 'OUTWARD-001')
        assert_ledger_consistent(self)

    def test_code_collision_is_retried(self):
        TestDataFactory.create_issue(item=TestDataFactory.create_item(status=Item.STATUS_ISSUED), user=self.user, issue_no='OUTWARD-001')
        with mock.patch.object(IssueQuerySet, 'generate_issue_no', side_effect=['OUTWARD-001', 'OUTWARD-002']) as generate:
            issue = services.create_issue(self.item.id, self.user)
        self.assertEqual(generate.call_count, 2)
        self.assertEqual(issue.issue_no, 'OUTWARD-002')

    def test_code_collision_gives_up(self):
        TestDataFactory.create_issue(item=TestDataFactory.create_item(status=Item.STATUS_ISSUED), user=self.user, issue_no='OUTWARD-001')
        with mock.patch.object(IssueQuerySet, 'generate_issue_no', return_value='OUTWARD-001') as generate:
            with self.assertRaises(Conflict):
                services.create_issue(self.item.id, self.user)
        self.assertEqual(generate.call_count, 3)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)


class CreateReturnTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.company = TestDataFactory.create_company()
        self.item = TestDataFactory.create_item()
        self.issue = services.create_issue(self.item.id, self.user, company_id=self.company.id, issued_to='Operator A')

    def test_condition_drives_item_status(self):
        for condition, expected in [
            ('OK', Item.STATUS_AVAILABLE),
            ('Damaged', Item.STATUS_AVAILABLE),
            ('Calibration Required', Item.STATUS_AVAILABLE),
            ('Missing', Item.STATUS_MISSING),
        ]:
            with self.subTest(condition=condition):
                item = TestDataFactory.create_item()
                issue = services.create_issue(item.id, self.user)
                services.create_return(issue.id, condition, self.user, IMAGE)
                item.refresh_from_db()
                self.assertEqual(item.status, expected)
        assert_ledger_consistent(self)

    def test_return_copies_issue_context(self):
        status_label = TestDataFactory.create_status(name='Checked')
        inward = services.create_return(
            self.issue.id, 'OK', self.user, IMAGE,
            remarks='fine', received_by=' Store keeper ', status_id=status_label.id,
        )
        self.assertEqual(inward.company, self.company)
        self.assertEqual(inward.status, status_label)
        self.assertEqual(inward.received_by, 'Store keeper')
        self.assertEqual(inward.returned_by, self.user)

    def test_invalid_condition(self):
        with self.assertRaises(ValidationError):
            services.create_return(self.issue.id, 'Broken', self.user, IMAGE)
        self.assertEqual(Return.objects.count(), 0)

    def test_image_required(self):
        for image in ('', '   ', None):
            with self.subTest(image=image):
                with self.assertRaises(ValidationError):
                    services.create_return(self.issue.id, 'OK', self.user, image)

    def test_unknown_issue(self):
        with self.assertRaises(NotFound):
            services.create_return(9999, 'OK', self.user, IMAGE)

    def test_unknown_status_label(self):
        with self.assertRaises(NotFound):
            services.create_return(self.issue.id, 'OK', self.user, IMAGE, status_id=9999)
        self.assertFalse(Issue.objects.get(pk=self.issue.id).is_returned)

    def test_failed_status_write_rolls_back_return(self):
        with mock.patch.object(ItemQuerySet, 'set_status', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                services.create_return(self.issue.id, 'OK', self.user, IMAGE)
        self.assertEqual(Return.objects.count(), 0)
        self.assertFalse(Issue.objects.get(pk=self.issue.id).is_returned)
        assert_ledger_consistent(self)

    def test_codes_unique_and_well_formed(self):
        codes = []
        for _ in range(5):
            item = TestDataFactory.create_item()
            issue = services.create_issue(item.id, self.user)
            codes.append(issue.issue_no)
            codes.append(services.create_return(issue.id, 'OK', self.user, IMAGE).return_code)
        for code in codes:
            self.assertRegex(code, CODE_PATTERN)
        self.assertEqual(len(codes), len(set(codes)))


class ReceiveMissingItemTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.item = TestDataFactory.create_item(status=Item.STATUS_MISSING)

    def test_missing_condition_rejected(self):
        with self.assertRaises(ValidationError):
            services.receive_missing_item(self.item.id, 'Missing', self.user, IMAGE)

    def test_item_must_be_missing(self):
        item = TestDataFactory.create_item()
        with self.assertRaises(InvalidState):
            services.receive_missing_item(item.id, 'OK', self.user, IMAGE)
        self.assertEqual(Return.objects.count(), 0)

    def test_unknown_item(self):
        with self.assertRaises(NotFound):
            services.receive_missing_item(9999, 'OK', self.user, IMAGE)

    def test_receipt_records_own_context(self):
        company = TestDataFactory.create_company()
        inward = services.receive_missing_item(self.item.id, 'Calibration Required', self.user, IMAGE, company_id=company.id)
        self.assertEqual(inward.company, company)
        self.assertEqual(inward.resolved_item, self.item)

    def test_missing_after_return_then_received(self):
        item = TestDataFactory.create_item()
        issue = services.create_issue(item.id, self.user)
        services.create_return(issue.id, 'Missing', self.user, IMAGE)
        item.refresh_from_db()
        self.assertEqual(item.status, Item.STATUS_MISSING)

        services.receive_missing_item(item.id, 'OK', self.user, IMAGE)
        item.refresh_from_db()
        self.assertEqual(item.status, Item.STATUS_AVAILABLE)

        # and it can go out again
        services.create_issue(item.id, self.user)
        assert_ledger_consistent(self)


class LedgerQuerySetTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_mark_as_returned_only_once(self):
        issue = TestDataFactory.create_issue(user=self.user)
        self.assertTrue(Issue.objects.mark_as_returned(issue.id))
        self.assertFalse(Issue.objects.mark_as_returned(issue.id))
        self.assertTrue(Issue.objects.get(pk=issue.id).is_returned)

    def test_lookups(self):
        issue = TestDataFactory.create_issue(user=self.user)
        self.assertEqual(Issue.objects.find_by_issue_no(issue.issue_no), issue)
        self.assertIsNone(Issue.objects.find_by_issue_no('OUTWARD-999'))
        self.assertIsNone(Issue.objects.find_by_id(9999))

    def test_active_newest_first(self):
        first = TestDataFactory.create_issue(user=self.user)
        second = TestDataFactory.create_issue(user=self.user)
        TestDataFactory.create_issue(user=self.user, is_returned=True)
        self.assertEqual(list(Issue.objects.active()), [second, first])
        self.assertEqual(Issue.objects.get_count(), 3)

    def test_set_active_independent_of_item_status(self):
        item = TestDataFactory.create_item()
        issue = services.create_issue(item.id, self.user)
        inward = services.create_return(issue.id, 'OK', self.user, IMAGE)

        Return.objects.set_inactive(inward.id)
        inward.refresh_from_db()
        item.refresh_from_db()
        self.assertFalse(inward.is_active)
        self.assertEqual(item.status, Item.STATUS_AVAILABLE)

        Return.objects.set_active(inward.id)
        inward.refresh_from_db()
        self.assertTrue(inward.is_active)

    def test_by_issue(self):
        issue = TestDataFactory.create_issue(user=self.user, is_returned=True)
        inward = TestDataFactory.create_return(issue=issue, user=self.user)
        TestDataFactory.create_return(user=self.user)
        self.assertEqual(list(Return.objects.by_issue(issue.id)), [inward])

    def test_exactly_one_provenance_enforced(self):
        issue = TestDataFactory.create_issue(user=self.user)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Return.objects.create(
                    return_code='INWARD-900', issue=issue, item=issue.item,
                    condition='OK', returned_by=self.user, return_image=IMAGE,
                )
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Return.objects.create(
                    return_code='INWARD-901', condition='OK', returned_by=self.user, return_image=IMAGE,
                )

    def test_one_return_per_issue_enforced(self):
        issue = TestDataFactory.create_issue(user=self.user, is_returned=True)
        TestDataFactory.create_return(issue=issue, user=self.user)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TestDataFactory.create_return(issue=issue, user=self.user)


class TransactionFiltersParsingTests(SimpleTestCase):
    def test_defaults(self):
        filters = TransactionFilters.from_query_params(QueryDict(''))
        self.assertEqual(filters, TransactionFilters())
        self.assertFalse(filters.has_active_filters())

    def test_parses_lists_and_drops_garbage(self):
        params = QueryDict('status=inactive&company_ids=1, 2,x,&conditions=OK,Broken,Missing&search=  OUTWARD-001 &hide_issued_items=true')
        filters = TransactionFilters.from_query_params(params)
        self.assertEqual(filters.status, 'inactive')
        self.assertEqual(filters.company_ids, [1, 2])
        self.assertEqual(filters.conditions, ['OK', 'Missing'])
        self.assertEqual(filters.search, 'OUTWARD-001')
        self.assertTrue(filters.hide_issued_items)
        self.assertTrue(filters.has_active_filters())

    def test_camel_case_keys(self):
        filters = TransactionFilters.from_query_params({'companyIds': '5', 'operatorName': ' Ravi ', 'onlyPendingInward': 'true'})
        self.assertEqual(filters.company_ids, [5])
        self.assertEqual(filters.operator_name, 'Ravi')
        self.assertTrue(filters.only_pending_inward)

    def test_repeated_keys_are_all_kept(self):
        params = QueryDict('companyIds=1&companyIds=2,3&item_ids=7&item_ids=8&conditions=OK&conditions=Damaged')
        filters = TransactionFilters.from_query_params(params)
        self.assertEqual(filters.company_ids, [1, 2, 3])
        self.assertEqual(filters.item_ids, [7, 8])
        self.assertEqual(filters.conditions, ['OK', 'Damaged'])

    def test_unknown_status_means_all(self):
        self.assertEqual(TransactionFilters.from_query_params({'status': 'deleted'}).status, 'all')


class PredicateCompositionTests(SimpleTestCase):
    def test_combinators_skip_empty(self):
        self.assertEqual(all_of(), Q())
        self.assertEqual(any_of(Q(), Q()), Q())
        self.assertEqual(all_of(Q(), Q(a=1)), Q(a=1))
        self.assertEqual(any_of(Q(a=1), Q(), Q(b=2)), Q(a=1) | Q(b=2))

    def test_empty_filters_match_everything(self):
        self.assertEqual(build_return_predicate(TransactionFilters()), Q())
        self.assertEqual(build_issue_predicate(TransactionFilters()), Q())

    def test_id_sets_and_together(self):
        predicate = build_return_predicate(TransactionFilters(company_ids=[5], machine_ids=[1, 2]))
        self.assertEqual(predicate, Q(issue__company_id__in=[5]) & Q(issue__machine_id__in=[1, 2]))

    def test_item_filter_matches_either_provenance(self):
        predicate = build_return_predicate(TransactionFilters(item_ids=[3]))
        self.assertEqual(predicate, Q(issue__item_id__in=[3]) | Q(item_id__in=[3]))

    def test_values_in(self):
        self.assertEqual(values_in('condition', []), Q())
        self.assertEqual(values_in('condition', ('OK',)), Q(condition__in=['OK']))


class ReturnFilteringTests(TestCase):
    """Filtered ledger reads against real rows"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.company_a = TestDataFactory.create_company(name='Alpha Works')
        self.company_b = TestDataFactory.create_company(name='Beta Forge')
        self.contractor = TestDataFactory.create_contractor(name='Kiran Contractors')

        self.item_1 = TestDataFactory.create_item(name='Height gauge', serial_number='HG-1')
        self.item_2 = TestDataFactory.create_item(name='Bore gauge', serial_number='BG-2')
        self.item_3 = TestDataFactory.create_item(name='Thread plug', serial_number='TP-3')
        self.missing = TestDataFactory.create_item(name='Slip gauge', serial_number='SG-4', status=Item.STATUS_MISSING)

        issue_1 = services.create_issue(self.item_1.id, self.user, company_id=self.company_a.id, issued_to='Ravi')
        self.return_1 = services.create_return(issue_1.id, 'OK', self.user, IMAGE)
        issue_2 = services.create_issue(self.item_2.id, self.user, company_id=self.company_b.id,
                                        contractor_id=self.contractor.id, issued_to='Meena')
        self.return_2 = services.create_return(issue_2.id, 'Damaged', self.user, IMAGE)
        self.return_3 = services.receive_missing_item(self.missing.id, 'OK', self.user, IMAGE)
        issue_3 = services.create_issue(self.item_3.id, self.user, company_id=self.company_a.id)
        self.return_4 = services.create_return(issue_3.id, 'Missing', self.user, IMAGE)
        Return.objects.set_inactive(self.return_4.id)

        self.all_returns = [self.return_4, self.return_3, self.return_2, self.return_1]

    def filtered(self, **kwargs):
        return list(Return.objects.filtered(TransactionFilters(**kwargs)))

    def test_empty_filter_returns_everything_newest_first(self):
        self.assertEqual(self.filtered(), self.all_returns)

    def test_company_filter_is_subset(self):
        results = self.filtered(company_ids=[self.company_a.id])
        self.assertEqual(results, [self.return_4, self.return_1])
        self.assertTrue(set(results) <= set(self.filtered()))

    def test_id_sets_and_together(self):
        self.assertEqual(self.filtered(company_ids=[self.company_b.id], contractor_ids=[self.contractor.id]), [self.return_2])
        self.assertEqual(self.filtered(company_ids=[self.company_a.id], contractor_ids=[self.contractor.id]), [])

    def test_item_filter_covers_direct_receipts(self):
        self.assertEqual(self.filtered(item_ids=[self.missing.id, self.item_2.id]), [self.return_3, self.return_2])

    def test_status_filter(self):
        self.assertEqual(self.filtered(status='inactive'), [self.return_4])
        self.assertEqual(self.filtered(status='active'), [self.return_3, self.return_2, self.return_1])

    def test_conditions_and_operator(self):
        self.assertEqual(self.filtered(conditions=['Damaged', 'Missing']), [self.return_4, self.return_2])
        self.assertEqual(self.filtered(operator_name='mee'), [self.return_2])

    def test_search(self):
        self.assertEqual(self.filtered(search='OUTWARD-001'), [self.return_1])
        self.assertEqual(self.filtered(search='slip'), [self.return_3])
        self.assertEqual(self.filtered(search='sg-4'), [self.return_3])
        self.assertEqual(self.filtered(search='beta'), [self.return_2])
        self.assertEqual(self.filtered(search='kiran'), [self.return_2])
        self.assertEqual(self.filtered(search=self.return_3.return_code), [self.return_3])

    def test_search_by_status_label(self):
        label = TestDataFactory.create_status(name='Sent for calibration')
        self.return_2.status = label
        self.return_2.save()
        self.assertEqual(self.filtered(search='calibration'), [self.return_2])

    def test_hide_issued_items(self):
        services.create_issue(self.item_1.id, self.user)
        self.assertEqual(self.filtered(hide_issued_items=True), [self.return_4, self.return_3, self.return_2])

    def test_issue_filters(self):
        pending = services.create_issue(self.item_1.id, self.user, company_id=self.company_a.id)
        filters = TransactionFilters(company_ids=[self.company_a.id], only_pending_inward=True)
        self.assertEqual(list(Issue.objects.filtered(filters)), [pending])
        self.assertEqual(Issue.objects.filtered(TransactionFilters(search='Meena')).count(), 1)


class LedgerAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient().authenticate_user(self.user)
        self.company = TestDataFactory.create_company()
        self.item = TestDataFactory.create_item(serial_number='SN/77')

    def issue_item(self, item=None, **extra):
        payload = {'item_id': (item or self.item).id}
        payload.update(extra)
        return self.client.post('/api/v1/issues/', payload, format='json')

    def test_create_issue(self):
        response = self.issue_item(company_id=self.company.id, issued_to='Ravi', issued_by=9999)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['issue_no'], 'OUTWARD-001')
        self.assertEqual(response.data['issued_by']['id'], self.user.id)
        self.assertEqual(response.data['item_status'], Item.STATUS_ISSUED)
        self.assertTrue(AuditLog.objects.filter(action='outward_create', object_reference='OUTWARD-001').exists())

    def test_issue_unavailable_item(self):
        self.issue_item()
        response = self.issue_item()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'invalid_state')

    def test_issue_unknown_item(self):
        response = self.client.post('/api/v1/issues/', {'item_id': 9999}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_issue_lookups(self):
        issue_id = self.issue_item().data['id']
        self.assertEqual(self.client.get(f'/api/v1/issues/{issue_id}/').data['issue_no'], 'OUTWARD-001')
        self.assertEqual(self.client.get('/api/v1/issues/issue-no/OUTWARD-001/').data['id'], issue_id)
        self.assertEqual(self.client.get('/api/v1/issues/issue-no/OUTWARD-404/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(len(self.client.get('/api/v1/issues/active/').data), 1)
        self.assertEqual(self.client.get('/api/v1/issues/next-code/').data['code'], 'OUTWARD-002')

    @override_settings(STORAGES=IN_MEMORY_STORAGES)
    def test_create_return_with_upload(self):
        issue_id = self.issue_item().data['id']
        upload = SimpleUploadedFile('photo.JPG', b'fake-image-bytes', content_type='image/jpeg')
        response = self.client.post('/api/v1/returns/', {
            'issue_id': issue_id,
            'condition': 'Calibration Required',
            'image': upload,
            'remarks': 'needs check',
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['return_code'], 'INWARD-001')
        self.assertEqual(response.data['provenance'], 'issue')
        self.assertTrue(response.data['return_image'].startswith('items/SN_77/inward/inward-'))
        self.assertTrue(response.data['return_image'].endswith('.jpg'))
        self.assertEqual(response.data['returned_by']['id'], self.user.id)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)
        self.assertTrue(AuditLog.objects.filter(action='inward_create', object_reference='INWARD-001').exists())

    def upload(self, name='photo.jpg'):
        return SimpleUploadedFile(name, b'fake-image-bytes', content_type='image/jpeg')

    @override_settings(STORAGES=IN_MEMORY_STORAGES)
    def test_rejected_return_stores_no_image(self):
        issue_id = self.issue_item().data['id']
        payload = {'issue_id': issue_id, 'condition': 'OK'}
        response = self.client.post('/api/v1/returns/', {**payload, 'image': self.upload()}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post('/api/v1/returns/', {**payload, 'image': self.upload()}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'invalid_state')
        _, files = default_storage.listdir('items/SN_77/inward')
        self.assertEqual(len(files), 1)

    @override_settings(STORAGES=IN_MEMORY_STORAGES)
    def test_failed_return_discards_uploaded_image(self):
        issue_id = self.issue_item().data['id']
        response = self.client.post('/api/v1/returns/', {
            'issue_id': issue_id, 'condition': 'OK', 'status_id': 9999, 'image': self.upload(),
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        _, files = default_storage.listdir('items/SN_77/inward')
        self.assertEqual(files, [])
        self.assertEqual(Return.objects.count(), 0)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_ISSUED)

    @override_settings(STORAGES=IN_MEMORY_STORAGES)
    def test_rejected_receipt_stores_no_image(self):
        available = TestDataFactory.create_item(serial_number='AV-1')
        response = self.client.post('/api/v1/returns/receive-missing/', {
            'item_id': available.id, 'condition': 'OK', 'image': self.upload(),
        }, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'invalid_state')
        self.assertFalse(default_storage.exists('items/AV-1/inward'))

    def test_return_edit_keeps_concurrent_deactivation(self):
        issue_id = self.issue_item().data['id']
        return_id = self.client.post('/api/v1/returns/', {'issue_id': issue_id, 'condition': 'OK', 'return_image': IMAGE}, format='json').data['id']
        stale = Return.objects.get(pk=return_id)
        Return.objects.set_inactive(return_id)

        serializer = ReturnUpdateSerializer(stale, data={'remarks': 'checked'}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        inward = Return.objects.get(pk=return_id)
        self.assertEqual(inward.remarks, 'checked')
        self.assertFalse(inward.is_active)

    def test_second_return_rejected(self):
        issue_id = self.issue_item().data['id']
        payload = {'issue_id': issue_id, 'condition': 'OK', 'return_image': IMAGE}
        self.assertEqual(self.client.post('/api/v1/returns/', payload, format='json').status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/returns/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'invalid_state')
        self.assertEqual(Return.objects.count(), 1)

    def test_return_requires_image(self):
        issue_id = self.issue_item().data['id']
        response = self.client.post('/api/v1/returns/', {'issue_id': issue_id, 'condition': 'OK'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Return.objects.count(), 0)

    def test_receive_missing(self):
        missing = TestDataFactory.create_item(status=Item.STATUS_MISSING)
        response = self.client.post('/api/v1/returns/receive-missing/', {
            'item_id': missing.id, 'condition': 'Damaged', 'return_image': IMAGE,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['provenance'], 'direct')
        self.assertIsNone(response.data['issue'])
        self.assertEqual(response.data['item_id'], missing.id)
        self.assertTrue(AuditLog.objects.filter(action='missing_received').exists())

        response = self.client.post('/api/v1/returns/receive-missing/', {
            'item_id': missing.id, 'condition': 'OK', 'return_image': IMAGE,
        }, format='json')
        self.assertEqual(response.data['kind'], 'invalid_state')

    def test_receive_missing_rejects_missing_condition(self):
        missing = TestDataFactory.create_item(status=Item.STATUS_MISSING)
        response = self.client.post('/api/v1/returns/receive-missing/', {
            'item_id': missing.id, 'condition': 'Missing', 'return_image': IMAGE,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')

    def test_return_list_filters(self):
        other_company = TestDataFactory.create_company()
        other_item = TestDataFactory.create_item()
        first = self.issue_item(company_id=self.company.id).data['id']
        second = self.issue_item(item=other_item, company_id=other_company.id).data['id']
        for issue_id in (first, second):
            self.client.post('/api/v1/returns/', {'issue_id': issue_id, 'condition': 'OK', 'return_image': IMAGE}, format='json')

        response = self.client.get('/api/v1/returns/')
        self.assertEqual([row['return_code'] for row in response.data], ['INWARD-002', 'INWARD-001'])

        response = self.client.get('/api/v1/returns/', {'company_ids': f'{self.company.id}'})
        self.assertEqual([row['return_code'] for row in response.data], ['INWARD-001'])

        response = self.client.get('/api/v1/returns/', {'search': 'OUTWARD-002'})
        self.assertEqual([row['return_code'] for row in response.data], ['INWARD-002'])

        response = self.client.get('/api/v1/issues/', {'company_ids': f'{other_company.id}'})
        self.assertEqual([row['issue_no'] for row in response.data], ['OUTWARD-002'])

    def test_return_admin_edit_and_toggle(self):
        issue_id = self.issue_item().data['id']
        return_id = self.client.post('/api/v1/returns/', {'issue_id': issue_id, 'condition': 'OK', 'return_image': IMAGE}, format='json').data['id']
        label = TestDataFactory.create_status(name='Verified')

        response = self.client.patch(f'/api/v1/returns/{return_id}/', {
            'remarks': 'checked', 'status': label.id, 'condition': 'Missing',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['remarks'], 'checked')
        self.assertEqual(response.data['status_name'], 'Verified')
        self.assertEqual(response.data['condition'], 'OK')

        response = self.client.post(f'/api/v1/returns/{return_id}/inactive/')
        self.assertFalse(response.data['is_active'])
        response = self.client.post(f'/api/v1/returns/{return_id}/active/')
        self.assertTrue(response.data['is_active'])
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_AVAILABLE)
        self.assertEqual(AuditLog.objects.filter(model_name='Return', action__in=['inward_activate', 'inward_deactivate']).count(), 2)

        by_issue = self.client.get(f'/api/v1/returns/by-issue/{issue_id}/')
        self.assertEqual([row['id'] for row in by_issue.data], [return_id])
        self.assertEqual(self.client.get('/api/v1/returns/next-code/').data['code'], 'INWARD-002')
        self.assertEqual(self.client.get('/api/v1/returns/9999/').status_code, status.HTTP_404_NOT_FOUND)

    def test_status_list(self):
        TestDataFactory.create_status(name='Verified')
        inactive = TestDataFactory.create_status(name='Retired')
        inactive.is_active = False
        inactive.save()
        response = self.client.get('/api/v1/statuses/')
        self.assertEqual([row['name'] for row in response.data], ['Verified'])
        self.assertEqual(response.data[0]['code'], 'STS-001')
