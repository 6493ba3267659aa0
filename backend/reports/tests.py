"""
Test suite for Reports module
Tests: dashboard metrics (and their cache), active issues, missing items,
item history and CSV exports
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from backend.catalog.models import Item
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory import services
from backend.inventory.filters import TransactionFilters
from backend.reports.views import missing_items_queryset

IMAGE = 'items/SN/inward/photo.jpg'


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(username='reporter')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.company = TestDataFactory.create_company(name='Alpha Works')
        self.out_item = TestDataFactory.create_item(name='Caliper', serial_number='CAL-1')
        self.lost_item = TestDataFactory.create_item(name='Slip gauge', serial_number='SG-1')
        self.spare_item = TestDataFactory.create_item(name='Angle plate', serial_number='AP-1')

        self.open_issue = services.create_issue(self.out_item.id, self.user, company_id=self.company.id, issued_to='Ravi')
        lost_issue = services.create_issue(self.lost_item.id, self.user, company_id=self.company.id, issued_to='Meena')
        self.lost_return = services.create_return(lost_issue.id, 'Missing', self.user, IMAGE)

    def test_dashboard_metrics(self):
        response = self.client.get('/api/v1/dashboard/metrics/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'], {'total': 3, 'available': 1, 'issued': 1, 'missing': 1})
        self.assertEqual(response.data['issues'], {'total': 2, 'active': 1})
        self.assertEqual(response.data['returns'], {'total': 1})

    def test_dashboard_metrics_invalidated_on_ledger_write(self):
        self.client.get('/api/v1/dashboard/metrics/')
        with self.captureOnCommitCallbacks(execute=True):
            services.create_issue(self.spare_item.id, self.user)
        response = self.client.get('/api/v1/dashboard/metrics/')
        self.assertEqual(response.data['items']['issued'], 2)
        self.assertEqual(response.data['issues']['active'], 2)

    def test_dashboard_metrics_served_from_cache(self):
        self.client.get('/api/v1/dashboard/metrics/')
        # a write whose commit hooks never run leaves the cached counts in place
        services.create_issue(self.spare_item.id, self.user)
        response = self.client.get('/api/v1/dashboard/metrics/')
        self.assertEqual(response.data['items']['issued'], 1)

    def test_active_issues_report(self):
        response = self.client.get('/api/v1/reports/active-issues/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['page_size'], 25)
        self.assertEqual(response.data['results'][0]['issue_no'], self.open_issue.issue_no)

        response = self.client.get('/api/v1/reports/active-issues/', {'operator_name': 'nobody'})
        self.assertEqual(response.data['count'], 0)

    def test_page_size_restricted(self):
        response = self.client.get('/api/v1/reports/active-issues/', {'limit': 7, 'page': 'x'})
        self.assertEqual(response.data['page_size'], 25)
        self.assertEqual(response.data['page'], 1)
        response = self.client.get('/api/v1/reports/active-issues/', {'limit': 50})
        self.assertEqual(response.data['page_size'], 50)

    def test_missing_items_report(self):
        response = self.client.get('/api/v1/reports/missing-items/', {'company_ids': str(self.company.id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        row = response.data['results'][0]
        self.assertEqual(row['name'], 'Slip gauge')
        self.assertEqual(row['source_inward_code'], self.lost_return.return_code)

        response = self.client.get('/api/v1/reports/missing-items/', {'search': 'meena'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/reports/missing-items/', {'search': 'caliper'})
        self.assertEqual(response.data['count'], 0)

    def test_missing_items_carry_source_inward_code(self):
        second = TestDataFactory.create_item(name='Ring gauge', serial_number='RG-1')
        issue = services.create_issue(second.id, self.user)
        second_return = services.create_return(issue.id, 'Missing', self.user, IMAGE)

        rows = list(missing_items_queryset(TransactionFilters()))
        with self.assertNumQueries(0):
            codes = {item.name: item.source_inward_code for item in rows}
        self.assertEqual(codes, {
            'Ring gauge': second_return.return_code,
            'Slip gauge': self.lost_return.return_code,
        })

        response = self.client.get('/api/v1/reports/export/missing-items/')
        content = response.content.decode()
        self.assertIn(second_return.return_code, content)
        self.assertIn(self.lost_return.return_code, content)

    def test_item_history(self):
        services.receive_missing_item(self.lost_item.id, 'OK', self.user, IMAGE)
        response = self.client.get(f'/api/v1/reports/item-history/{self.lost_item.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['item']['status'], Item.STATUS_AVAILABLE)
        self.assertEqual([row['type'] for row in response.data['results']], ['return', 'return', 'issue'])
        self.assertEqual(response.data['results'][1]['return_code'], self.lost_return.return_code)
        self.assertEqual(response.data['results'][2]['description'], 'Issued to Meena')

    def test_item_history_unknown_item(self):
        response = self.client.get('/api/v1/reports/item-history/9999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_export_active_issues(self):
        response = self.client.get('/api/v1/reports/export/active-issues/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('attachment; filename="active-issues-', response['Content-Disposition'])
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0].split(',')[:3], ['Sr.No', 'Issue No', 'Item Name'])
        self.assertEqual(len(lines), 2)
        self.assertIn(self.open_issue.issue_no, lines[1])

    def test_export_missing_items(self):
        response = self.client.get('/api/v1/reports/export/missing-items/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn('SG-1', lines[1])
        self.assertIn(self.lost_return.return_code, lines[1])

    def test_requires_authentication(self):
        response = AuthenticatedAPIClient().get('/api/v1/dashboard/metrics/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
