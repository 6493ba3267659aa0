from dataclasses import dataclass

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from backend.catalog.models import Item
from backend.core.codes import OUTWARD_PREFIX, INWARD_PREFIX, generate_code
from backend.core.models import ReferenceModel
from backend.locations.models import Location
from backend.parties.models import Company, Contractor, Machine


@dataclass(frozen=True)
class FromIssue:
    """Return closing an open issue"""
    issue_id: int

    def as_fields(self):
        return {'issue_id': self.issue_id, 'item_id': None}


@dataclass(frozen=True)
class DirectReceipt:
    """Return receiving a missing item without an issue"""
    item_id: int

    def as_fields(self):
        return {'issue_id': None, 'item_id': self.item_id}


class Status(ReferenceModel):
    """Administrative labels attached to returns"""
    CODE_PREFIX = 'STS'

    name = models.CharField(max_length=100, unique=True)

    class Meta(ReferenceModel.Meta):
        db_table = 'statuses'
        verbose_name_plural = 'statuses'


class IssueQuerySet(models.QuerySet):
    def hydrated(self):
        return self.select_related('item', 'item__category', 'issued_by', 'company', 'contractor', 'machine', 'location')

    def active(self):
        return self.hydrated().filter(is_returned=False).order_by('-issued_at', '-id')

    def find_by_id(self, pk):
        return self.hydrated().filter(pk=pk).first()

    def find_by_issue_no(self, issue_no):
        return self.hydrated().filter(issue_no=issue_no).first()

    def mark_as_returned(self, issue_id):
        """Close an open issue; False when it was already closed"""
        return self.filter(pk=issue_id, is_returned=False).update(is_returned=True, updated_at=timezone.now()) == 1

    def generate_issue_no(self):
        return generate_code(self.model, 'issue_no', OUTWARD_PREFIX)

    def get_count(self):
        return self.count()

    def filtered(self, filters):
        from .filters import build_issue_predicate
        return self.hydrated().filter(build_issue_predicate(filters)).order_by('-issued_at', '-id')


class Issue(models.Model):
    """Outward transaction: an item checked out to the field"""
    issue_no = models.CharField(max_length=50, unique=True)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='issues')
    issued_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='issues')
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name='issues', null=True, blank=True)
    contractor = models.ForeignKey(Contractor, on_delete=models.PROTECT, related_name='issues', null=True, blank=True)
    machine = models.ForeignKey(Machine, on_delete=models.PROTECT, related_name='issues', null=True, blank=True)
    location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name='issues', null=True, blank=True)
    issued_to = models.CharField(max_length=200, blank=True)  # operator name
    remarks = models.TextField(blank=True)
    is_returned = models.BooleanField(default=False, db_index=True)
    issued_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = IssueQuerySet.as_manager()

    def __str__(self):
        return f"{self.issue_no} - {self.item.name}"

    class Meta:
        db_table = 'issues'
        ordering = ['-issued_at', '-id']
        indexes = [
            models.Index(fields=['item', 'is_returned'], name='idx_issue_item_returned'),
        ]


class ReturnQuerySet(models.QuerySet):
    def create(self, provenance=None, **kwargs):
        """Insert a return; `provenance` is a FromIssue or DirectReceipt"""
        if provenance is not None:
            kwargs.update(provenance.as_fields())
        return super().create(**kwargs)

    def hydrated(self):
        return self.select_related(
            'issue', 'issue__item', 'issue__item__category', 'issue__company', 'issue__contractor',
            'issue__machine', 'issue__location', 'issue__issued_by',
            'item', 'item__category', 'status', 'returned_by',
            'company', 'contractor', 'machine', 'location',
        )

    def for_item(self, item_id):
        """Returns for an item through either provenance"""
        return self.filter(Q(issue__item_id=item_id) | Q(item_id=item_id))

    def by_issue(self, issue_id):
        return self.hydrated().filter(issue_id=issue_id).order_by('-returned_at', '-id')

    def filtered(self, filters):
        from .filters import build_return_predicate
        return self.hydrated().filter(build_return_predicate(filters)).order_by('-returned_at', '-id')

    def set_active(self, return_id):
        return self.filter(pk=return_id).update(is_active=True, updated_at=timezone.now())

    def set_inactive(self, return_id):
        return self.filter(pk=return_id).update(is_active=False, updated_at=timezone.now())

    def generate_return_code(self):
        return generate_code(self.model, 'return_code', INWARD_PREFIX)

    def get_count(self):
        return self.count()


class Return(models.Model):
    """
    Inward transaction: an item checked back in with a recorded condition.

    A return either closes an issue (FromIssue) or receives a missing item
    directly (DirectReceipt); exactly one of `issue` / `item` is set.
    """
    CONDITION_OK = 'OK'
    CONDITION_DAMAGED = 'Damaged'
    CONDITION_CALIBRATION_REQUIRED = 'Calibration Required'
    CONDITION_MISSING = 'Missing'

    CONDITION_CHOICES = [
        (CONDITION_OK, 'OK'),
        (CONDITION_DAMAGED, 'Damaged'),
        (CONDITION_CALIBRATION_REQUIRED, 'Calibration Required'),
        (CONDITION_MISSING, 'Missing'),
    ]
    CONDITIONS = [value for value, _ in CONDITION_CHOICES]

    return_code = models.CharField(max_length=50, unique=True)
    issue = models.ForeignKey(Issue, on_delete=models.PROTECT, related_name='returns', null=True, blank=True)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='direct_returns', null=True, blank=True)
    condition = models.CharField(max_length=30, choices=CONDITION_CHOICES)
    status = models.ForeignKey(Status, on_delete=models.SET_NULL, related_name='returns', null=True, blank=True)
    returned_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='returns')
    return_image = models.CharField(max_length=500)  # storage path
    received_by = models.CharField(max_length=200, blank=True)
    remarks = models.TextField(blank=True)
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name='returns', null=True, blank=True)
    contractor = models.ForeignKey(Contractor, on_delete=models.PROTECT, related_name='returns', null=True, blank=True)
    machine = models.ForeignKey(Machine, on_delete=models.PROTECT, related_name='returns', null=True, blank=True)
    location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name='returns', null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    returned_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ReturnQuerySet.as_manager()

    def __str__(self):
        return self.return_code

    @property
    def provenance(self):
        if self.issue_id is not None:
            return FromIssue(self.issue_id)
        return DirectReceipt(self.item_id)

    @property
    def resolved_item(self):
        """The item this return is about, whichever provenance it has"""
        return self.issue.item if self.issue_id is not None else self.item

    class Meta:
        db_table = 'returns'
        ordering = ['-returned_at', '-id']
        constraints = [
            models.CheckConstraint(
                condition=(Q(issue__isnull=False, item__isnull=True) | Q(issue__isnull=True, item__isnull=False)),
                name='return_exactly_one_provenance',
            ),
            models.UniqueConstraint(fields=['issue'], name='return_one_per_issue'),
        ]
        indexes = [
            models.Index(fields=['is_active', '-returned_at'], name='idx_return_active_date'),
        ]
