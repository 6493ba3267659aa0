import logging

from django.db import models
from django.db.models import OuterRef, Subquery
from django.utils import timezone

from backend.core.exceptions import Conflict, InvalidState
from backend.core.models import ReferenceModel

logger = logging.getLogger('backend.catalog')


class ItemCategory(ReferenceModel):
    """Item categories"""
    CODE_PREFIX = 'CAT'

    description = models.TextField(blank=True)

    class Meta(ReferenceModel.Meta):
        db_table = 'item_categories'
        verbose_name_plural = 'item categories'


class ItemQuerySet(models.QuerySet):
    def active(self, status=None):
        queryset = self.filter(is_active=True)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('name')

    def available(self):
        return self.active(status=Item.STATUS_AVAILABLE)

    def by_status(self, status):
        return self.filter(status=status).order_by('name')

    def set_status(self, item_id, new_status, expected=None):
        """
        Write an item's status and return the number of rows updated.

        With `expected`, the write only happens while the stored status still
        equals it (compare-and-set), so 0 means another writer got there first.
        Legal transitions are not checked here; use Item.transition.
        """
        queryset = self.filter(pk=item_id)
        if expected is not None:
            queryset = queryset.filter(status=expected)
        return queryset.update(status=new_status, updated_at=timezone.now())

    def serial_number_exists(self, serial_number):
        if not serial_number:
            return False
        return self.filter(serial_number__iexact=serial_number.strip()).exists()

    def serial_number_exists_excluding(self, serial_number, exclude_id):
        if not serial_number:
            return False
        return self.filter(serial_number__iexact=serial_number.strip()).exclude(pk=exclude_id).exists()

    def get_count(self):
        return self.count()

    def with_source_inward_code(self):
        """Annotate the code of the inward that reported each item missing"""
        from backend.inventory.models import Return
        reported = (
            Return.objects.filter(issue__item_id=OuterRef('pk'), condition=Return.CONDITION_MISSING)
            .order_by('-returned_at', '-id')
            .values('return_code')[:1]
        )
        return self.annotate(reported_missing_by=Subquery(reported))


class Item(models.Model):
    """
    A physical, serial-numbered item tracked through the ledger.

    Status follows a small state machine driven by ledger events:

        AVAILABLE --issue----------> ISSUED
        ISSUED    --return---------> AVAILABLE
        ISSUED    --report_missing-> MISSING
        MISSING   --receive--------> AVAILABLE
    """
    STATUS_AVAILABLE = 'AVAILABLE'
    STATUS_ISSUED = 'ISSUED'
    STATUS_MISSING = 'MISSING'

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_ISSUED, 'Issued'),
        (STATUS_MISSING, 'Missing'),
    ]

    EVENT_ISSUE = 'issue'
    EVENT_RETURN = 'return'
    EVENT_REPORT_MISSING = 'report_missing'
    EVENT_RECEIVE = 'receive'

    TRANSITIONS = {
        (STATUS_AVAILABLE, EVENT_ISSUE): STATUS_ISSUED,
        (STATUS_ISSUED, EVENT_RETURN): STATUS_AVAILABLE,
        (STATUS_ISSUED, EVENT_REPORT_MISSING): STATUS_MISSING,
        (STATUS_MISSING, EVENT_RECEIVE): STATUS_AVAILABLE,
    }

    # Statuses an item may be registered with
    INITIAL_STATUSES = [STATUS_AVAILABLE, STATUS_MISSING]

    # Columns a plain save() of an existing item writes
    EDITABLE_FIELDS = ['name', 'serial_number', 'description', 'category', 'image', 'is_active', 'updated_at']

    name = models.CharField(max_length=200, db_index=True)
    serial_number = models.CharField(max_length=100, unique=True, null=True, blank=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(ItemCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='items')
    image = models.CharField(max_length=500, blank=True)  # storage path
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_AVAILABLE, db_index=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ItemQuerySet.as_manager()

    def __str__(self):
        return f"{self.name} ({self.serial_number or 'NO-SERIAL'})"

    def save(self, *args, **kwargs):
        # Blank serials are stored as NULL so they don't collide on the unique index
        self.serial_number = (self.serial_number or '').strip() or None
        if not self._state.adding and kwargs.get('update_fields') is None:
            # Status of an existing row is only written through transition()
            kwargs['update_fields'] = self.EDITABLE_FIELDS
        super().save(*args, **kwargs)

    def can_transition(self, event):
        return (self.status, event) in self.TRANSITIONS

    def transition(self, event):
        """
        Apply a ledger event to this item's status.

        Raises InvalidState for an event not allowed from the current status,
        and Conflict when the stored status changed since this row was read.
        Returns the new status.
        """
        new_status = self.TRANSITIONS.get((self.status, event))
        if new_status is None:
            logger.warning(f"Rejected '{event}' for item {self.pk} in status {self.status}")
            raise InvalidState(f"Item '{self.name}' cannot '{event}' while {self.status}.")

        updated = Item.objects.set_status(self.pk, new_status, expected=self.status)
        if not updated:
            raise Conflict(f"Item '{self.name}' changed status concurrently.")

        logger.debug(f"Item {self.pk}: {self.status} -> {new_status} ({event})")
        self.status = new_status
        return new_status

    @property
    def latest_image(self):
        """Newest active return image for this item, else the item's own image"""
        from backend.inventory.models import Return
        latest = (
            Return.objects.for_item(self.pk)
            .filter(is_active=True)
            .exclude(return_image='')
            .order_by('-returned_at', '-id')
            .values_list('return_image', flat=True)
            .first()
        )
        return latest or self.image or None

    @property
    def source_inward_code(self):
        """Return code of the inward that reported this item missing"""
        if self.status != self.STATUS_MISSING:
            return None
        if hasattr(self, 'reported_missing_by'):
            return self.reported_missing_by
        from backend.inventory.models import Return
        return (
            Return.objects.filter(issue__item_id=self.pk, condition=Return.CONDITION_MISSING)
            .order_by('-returned_at', '-id')
            .values_list('return_code', flat=True)
            .first()
        )

    class Meta:
        db_table = 'items'
        ordering = ['name']
        indexes = [
            models.Index(fields=['status', 'is_active'], name='idx_item_status_active'),
        ]
