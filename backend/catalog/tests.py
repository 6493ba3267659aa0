"""
Tests for the item store: queries, the status state machine and item endpoints
"""
from django.contrib import admin
from django.test import TestCase, RequestFactory
from rest_framework import status

from backend.catalog.models import Item
from backend.catalog.serializers import ItemSerializer
from backend.core.exceptions import Conflict, InvalidState
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory import services
from backend.inventory.models import Issue


class ItemQuerySetTests(TestCase):
    def setUp(self):
        self.b = TestDataFactory.create_item(name='Bore gauge')
        self.a = TestDataFactory.create_item(name='Angle plate')
        self.issued = TestDataFactory.create_item(name='Caliper', status=Item.STATUS_ISSUED)
        self.missing = TestDataFactory.create_item(name='Dial indicator', status=Item.STATUS_MISSING)
        self.inactive = TestDataFactory.create_item(name='Micrometer', is_active=False)

    def test_available_ordered_by_name(self):
        self.assertEqual(list(Item.objects.available()), [self.a, self.b])

    def test_by_status(self):
        self.assertEqual(list(Item.objects.by_status(Item.STATUS_MISSING)), [self.missing])

    def test_active_optionally_narrowed(self):
        self.assertNotIn(self.inactive, Item.objects.active())
        self.assertEqual(list(Item.objects.active(status=Item.STATUS_ISSUED)), [self.issued])

    def test_set_status_unconditional(self):
        self.assertEqual(Item.objects.set_status(self.a.id, Item.STATUS_MISSING), 1)
        self.a.refresh_from_db()
        self.assertEqual(self.a.status, Item.STATUS_MISSING)

    def test_set_status_compare_and_set(self):
        self.assertEqual(Item.objects.set_status(self.a.id, Item.STATUS_ISSUED, expected=Item.STATUS_MISSING), 0)
        self.a.refresh_from_db()
        self.assertEqual(self.a.status, Item.STATUS_AVAILABLE)

    def test_serial_number_probes(self):
        self.assertTrue(Item.objects.serial_number_exists(self.a.serial_number))
        self.assertTrue(Item.objects.serial_number_exists(f' {self.a.serial_number.lower()} '))
        self.assertFalse(Item.objects.serial_number_exists('NOPE-1'))
        self.assertFalse(Item.objects.serial_number_exists(''))
        self.assertFalse(Item.objects.serial_number_exists_excluding(self.a.serial_number, self.a.id))
        self.assertTrue(Item.objects.serial_number_exists_excluding(self.a.serial_number, self.b.id))

    def test_get_count(self):
        self.assertEqual(Item.objects.get_count(), 5)

    def test_blank_serials_do_not_collide(self):
        first = TestDataFactory.create_item(serial_number='')
        second = TestDataFactory.create_item(serial_number='   ')
        self.assertIsNone(first.serial_number)
        self.assertIsNone(second.serial_number)


class ItemTransitionTests(TestCase):
    def test_legal_transitions(self):
        item = TestDataFactory.create_item()
        self.assertEqual(item.transition(Item.EVENT_ISSUE), Item.STATUS_ISSUED)
        self.assertEqual(item.transition(Item.EVENT_REPORT_MISSING), Item.STATUS_MISSING)
        self.assertEqual(item.transition(Item.EVENT_RECEIVE), Item.STATUS_AVAILABLE)
        self.assertEqual(item.transition(Item.EVENT_ISSUE), Item.STATUS_ISSUED)
        self.assertEqual(item.transition(Item.EVENT_RETURN), Item.STATUS_AVAILABLE)
        item.refresh_from_db()
        self.assertEqual(item.status, Item.STATUS_AVAILABLE)

    def test_illegal_transitions_rejected(self):
        illegal = [
            (Item.STATUS_AVAILABLE, Item.EVENT_RETURN),
            (Item.STATUS_AVAILABLE, Item.EVENT_REPORT_MISSING),
            (Item.STATUS_AVAILABLE, Item.EVENT_RECEIVE),
            (Item.STATUS_ISSUED, Item.EVENT_ISSUE),
            (Item.STATUS_ISSUED, Item.EVENT_RECEIVE),
            (Item.STATUS_MISSING, Item.EVENT_ISSUE),
            (Item.STATUS_MISSING, Item.EVENT_RETURN),
        ]
        for current, event in illegal:
            with self.subTest(status=current, event=event):
                item = TestDataFactory.create_item(status=current)
                self.assertFalse(item.can_transition(event))
                with self.assertRaises(InvalidState):
                    item.transition(event)
                item.refresh_from_db()
                self.assertEqual(item.status, current)

    def test_stale_instance_conflicts(self):
        item = TestDataFactory.create_item()
        stale = Item.objects.get(pk=item.pk)
        item.transition(Item.EVENT_ISSUE)
        with self.assertRaises(Conflict):
            stale.transition(Item.EVENT_ISSUE)

    def test_save_of_stale_instance_keeps_ledger_status(self):
        item = TestDataFactory.create_item(name='Caliper')
        stale = Item.objects.get(pk=item.pk)
        issue = services.create_issue(item.id, TestDataFactory.create_user())

        stale.name = 'Digital caliper'
        stale.save()

        item.refresh_from_db()
        self.assertEqual(item.name, 'Digital caliper')
        self.assertEqual(item.status, Item.STATUS_ISSUED)
        self.assertFalse(Issue.objects.get(pk=issue.id).is_returned)

    def test_serializer_update_of_stale_instance_keeps_ledger_status(self):
        item = TestDataFactory.create_item()
        stale = Item.objects.get(pk=item.pk)
        services.create_issue(item.id, TestDataFactory.create_user())

        serializer = ItemSerializer(stale, data={'name': 'renamed', 'status': Item.STATUS_AVAILABLE}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        item.refresh_from_db()
        self.assertEqual(item.name, 'renamed')
        self.assertEqual(item.status, Item.STATUS_ISSUED)


class ItemExtrasTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_latest_image_falls_back_to_item_image(self):
        item = TestDataFactory.create_item(image='items/SN/master.jpg')
        self.assertEqual(item.latest_image, 'items/SN/master.jpg')
        self.assertIsNone(TestDataFactory.create_item().latest_image)

    def test_latest_image_prefers_active_return(self):
        item = TestDataFactory.create_item(image='items/SN/master.jpg')
        issue = TestDataFactory.create_issue(item=item, user=self.user, is_returned=True)
        inward = TestDataFactory.create_return(issue=issue, user=self.user, return_image='items/SN/inward/a.jpg')
        self.assertEqual(item.latest_image, 'items/SN/inward/a.jpg')
        inward.is_active = False
        inward.save()
        self.assertEqual(item.latest_image, 'items/SN/master.jpg')

    def test_source_inward_code(self):
        item = TestDataFactory.create_item(status=Item.STATUS_MISSING)
        issue = TestDataFactory.create_issue(item=item, user=self.user, is_returned=True)
        inward = TestDataFactory.create_return(issue=issue, user=self.user, condition='Missing')
        self.assertEqual(item.source_inward_code, inward.return_code)
        self.assertIsNone(TestDataFactory.create_item().source_inward_code)


class ItemAPITests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient().authenticate_user(self.user)
        self.category = TestDataFactory.create_category()

    def test_requires_authentication(self):
        response = AuthenticatedAPIClient().get('/api/v1/items/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_item(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Vernier caliper',
            'serial_number': ' VC-100 ',
            'category': self.category.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['serial_number'], 'VC-100')
        self.assertEqual(response.data['status'], Item.STATUS_AVAILABLE)
        self.assertEqual(response.data['category_name'], self.category.name)

    def test_create_duplicate_serial_conflicts(self):
        TestDataFactory.create_item(serial_number='VC-100')
        response = self.client.post('/api/v1/items/', {'name': 'Another', 'serial_number': 'vc-100'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'conflict')

    def test_status_only_settable_at_registration(self):
        response = self.client.post('/api/v1/items/', {'name': 'Gauge', 'status': Item.STATUS_ISSUED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Item.objects.filter(name='Gauge').exists())

        response = self.client.post('/api/v1/items/', {'name': 'Gauge'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Item.STATUS_AVAILABLE)

        item_id = response.data['id']
        response = self.client.patch(f'/api/v1/items/{item_id}/', {'status': Item.STATUS_MISSING}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Item.STATUS_AVAILABLE)
        self.assertEqual(Item.objects.get(pk=item_id).status, Item.STATUS_AVAILABLE)

    def test_create_missing_item(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Feeler gauge', 'serial_number': 'FG-9', 'status': Item.STATUS_MISSING,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Item.STATUS_MISSING)

        # a registered missing item can be received straight back into stock
        response = self.client.post('/api/v1/returns/receive-missing/', {
            'item_id': response.data['id'], 'condition': 'OK', 'return_image': 'items/FG-9/inward/a.jpg',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Item.objects.get(serial_number='FG-9').status, Item.STATUS_AVAILABLE)

    def test_patch_after_issue_keeps_issued_status(self):
        item = TestDataFactory.create_item()
        self.client.post('/api/v1/issues/', {'item_id': item.id}, format='json')
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Item.STATUS_ISSUED)
        self.assertEqual(Item.objects.get(pk=item.id).status, Item.STATUS_ISSUED)

    def test_update_duplicate_serial_conflicts(self):
        TestDataFactory.create_item(serial_number='SN-A')
        item = TestDataFactory.create_item(serial_number='SN-B')
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'serial_number': 'SN-A'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.patch(f'/api/v1/items/{item.id}/', {'serial_number': 'SN-B', 'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Renamed')

    def test_list_filters(self):
        TestDataFactory.create_item(name='A')
        TestDataFactory.create_item(name='B', status=Item.STATUS_MISSING)
        TestDataFactory.create_item(name='C', is_active=False)

        response = self.client.get('/api/v1/items/', {'status': 'missing'})
        self.assertEqual([row['name'] for row in response.data], ['B'])

        response = self.client.get('/api/v1/items/', {'is_active': 'false'})
        self.assertEqual([row['name'] for row in response.data], ['C'])

        response = self.client.get('/api/v1/items/available/')
        self.assertEqual([row['name'] for row in response.data], ['A'])

        response = self.client.get('/api/v1/items/missing/')
        self.assertEqual([row['name'] for row in response.data], ['B'])
        self.assertIn('source_inward_code', response.data[0])

    def test_detail_not_found(self):
        response = self.client.get('/api/v1/items/9999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ItemAdminTests(TestCase):
    def setUp(self):
        self.model_admin = admin.site._registry[Item]
        self.request = RequestFactory().get('/admin/catalog/item/')

    def test_status_editable_only_when_adding(self):
        self.assertNotIn('status', self.model_admin.get_readonly_fields(self.request))
        item = TestDataFactory.create_item()
        self.assertIn('status', self.model_admin.get_readonly_fields(self.request, item))

    def test_status_choices_limited_to_initial_statuses(self):
        field = self.model_admin.formfield_for_choice_field(Item._meta.get_field('status'), self.request)
        values = [value for value, _ in field.choices if value]
        self.assertEqual(values, [Item.STATUS_AVAILABLE, Item.STATUS_MISSING])
