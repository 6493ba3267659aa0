from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model; the acting user on every ledger transaction"""
    ROLE_CHOICES = [
        ('QC_USER', 'QC User'),
        ('QC_MANAGER', 'QC Manager'),
        ('QC_ADMIN', 'QC Admin'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='QC_USER')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.username

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for ledger operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('outward_create', 'Outward Created'),
        ('inward_create', 'Inward Created'),
        ('inward_update', 'Inward Updated'),
        ('inward_activate', 'Inward Activated'),
        ('inward_deactivate', 'Inward Deactivated'),
        ('missing_received', 'Missing Item Received'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., item name)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference code (e.g., OUTWARD-001, INWARD-004)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]


class ReferenceModel(models.Model):
    """
    Base for reference data (companies, contractors, machines, ...).

    Rows get a sequential code (e.g. COM-001) on first save when none was given.
    """
    CODE_PREFIX = 'REF'

    code = models.CharField(max_length=50, unique=True, blank=True)
    name = models.CharField(max_length=200)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @classmethod
    def next_code(cls):
        """Advisory next code; the real one is derived again at save time"""
        from backend.core.codes import generate_code
        return generate_code(cls, 'code', cls.CODE_PREFIX)

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self.next_code()
        super().save(*args, **kwargs)

    class Meta:
        abstract = True
        ordering = ['name']
