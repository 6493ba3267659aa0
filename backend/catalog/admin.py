from django.contrib import admin
from .models import ItemCategory, Item


@admin.register(ItemCategory)
class ItemCategoryAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['code', 'name']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'serial_number', 'category', 'status', 'is_active', 'created_at']
    list_filter = ['status', 'is_active', 'category', 'created_at']
    search_fields = ['name', 'serial_number', 'description']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']

    def get_readonly_fields(self, request, obj=None):
        # Status is chosen once at registration, then moved by issue / return transactions
        if obj is not None:
            return ['status', *self.readonly_fields]
        return self.readonly_fields

    def formfield_for_choice_field(self, db_field, request, **kwargs):
        if db_field.name == 'status':
            kwargs['choices'] = [choice for choice in Item.STATUS_CHOICES if choice[0] in Item.INITIAL_STATUSES]
        return super().formfield_for_choice_field(db_field, request, **kwargs)
