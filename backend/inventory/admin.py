from django.contrib import admin
from .models import Status, Issue, Return


@admin.register(Status)
class StatusAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Issue)
class IssueAdmin(admin.ModelAdmin):
    """Read-only view of the outward ledger; issues are created through the API"""
    list_display = ['issue_no', 'item', 'issued_to', 'company', 'contractor', 'is_returned', 'issued_by', 'issued_at']
    list_filter = ['is_returned', 'company', 'contractor', 'issued_at']
    search_fields = ['issue_no', 'item__name', 'item__serial_number', 'issued_to']
    ordering = ['-issued_at']
    readonly_fields = [f.name for f in Issue._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Return)
class ReturnAdmin(admin.ModelAdmin):
    list_display = ['return_code', 'issue', 'item', 'condition', 'status', 'is_active', 'returned_by', 'returned_at']
    list_filter = ['condition', 'is_active', 'status', 'returned_at']
    search_fields = ['return_code', 'issue__issue_no', 'item__name', 'issue__item__name', 'received_by']
    ordering = ['-returned_at']
    readonly_fields = ['return_code', 'issue', 'item', 'condition', 'returned_by', 'return_image',
                       'company', 'contractor', 'machine', 'location', 'returned_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
