from rest_framework import serializers
from .models import ItemCategory, Item


class ItemCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ItemCategory
        fields = ['id', 'code', 'name', 'description', 'is_active']


class ItemSerializer(serializers.ModelSerializer):
    """
    Item with its lifecycle extras.

    `status` can only be chosen when registering an item (AVAILABLE or
    MISSING); afterwards it is moved by the ledger alone and ignored here.
    """
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    latest_image = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = [
            'id', 'name', 'serial_number', 'description', 'category', 'category_name',
            'image', 'latest_image', 'status', 'status_display', 'is_active',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']
        # Serial uniqueness is probed in the view so duplicates answer 409
        extra_kwargs = {'serial_number': {'validators': []}}

    def get_latest_image(self, obj):
        return obj.latest_image

    def validate_serial_number(self, value):
        if value is None:
            return None
        return value.strip() or None

    def validate_status(self, value):
        if self.instance is None and value not in Item.INITIAL_STATUSES:
            raise serializers.ValidationError(
                f"A new item must be {' or '.join(Item.INITIAL_STATUSES)}."
            )
        return value

    def validate(self, attrs):
        if self.instance is not None:
            attrs.pop('status', None)
        return attrs


class MissingItemSerializer(ItemSerializer):
    """Missing items carry the inward code that reported them"""
    source_inward_code = serializers.SerializerMethodField()

    class Meta(ItemSerializer.Meta):
        fields = ItemSerializer.Meta.fields + ['source_inward_code']

    def get_source_inward_code(self, obj):
        return obj.source_inward_code
