from rest_framework import serializers

from backend.core.serializers import UserSummarySerializer
from .models import Issue, Return, Status


class StatusSerializer(serializers.ModelSerializer):
    class Meta:
        model = Status
        fields = ['id', 'code', 'name', 'is_active']


class IssueSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_serial_number = serializers.CharField(source='item.serial_number', read_only=True)
    item_status = serializers.CharField(source='item.status', read_only=True)
    company_name = serializers.CharField(source='company.name', read_only=True, default=None)
    contractor_name = serializers.CharField(source='contractor.name', read_only=True, default=None)
    machine_name = serializers.CharField(source='machine.name', read_only=True, default=None)
    location_name = serializers.CharField(source='location.name', read_only=True, default=None)
    issued_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Issue
        fields = [
            'id', 'issue_no', 'item', 'item_name', 'item_serial_number', 'item_status',
            'issued_by', 'company', 'company_name', 'contractor', 'contractor_name',
            'machine', 'machine_name', 'location', 'location_name',
            'issued_to', 'remarks', 'is_returned', 'issued_at', 'updated_at',
        ]
        read_only_fields = fields


class IssueCreateSerializer(serializers.Serializer):
    """Input for an outward; issued_by always comes from the request user"""
    item_id = serializers.IntegerField()
    category_id = serializers.IntegerField(required=False, allow_null=True)
    company_id = serializers.IntegerField(required=False, allow_null=True)
    contractor_id = serializers.IntegerField(required=False, allow_null=True)
    machine_id = serializers.IntegerField(required=False, allow_null=True)
    location_id = serializers.IntegerField(required=False, allow_null=True)
    issued_to = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class ReturnSerializer(serializers.ModelSerializer):
    provenance = serializers.SerializerMethodField()
    issue_no = serializers.CharField(source='issue.issue_no', read_only=True, default=None)
    issued_to = serializers.CharField(source='issue.issued_to', read_only=True, default=None)
    item_id = serializers.SerializerMethodField()
    item_name = serializers.SerializerMethodField()
    item_serial_number = serializers.SerializerMethodField()
    status_name = serializers.CharField(source='status.name', read_only=True, default=None)
    company_name = serializers.CharField(source='company.name', read_only=True, default=None)
    contractor_name = serializers.CharField(source='contractor.name', read_only=True, default=None)
    machine_name = serializers.CharField(source='machine.name', read_only=True, default=None)
    location_name = serializers.CharField(source='location.name', read_only=True, default=None)
    returned_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Return
        fields = [
            'id', 'return_code', 'provenance', 'issue', 'issue_no', 'issued_to',
            'item_id', 'item_name', 'item_serial_number', 'condition',
            'status', 'status_name', 'returned_by', 'return_image', 'received_by', 'remarks',
            'company', 'company_name', 'contractor', 'contractor_name',
            'machine', 'machine_name', 'location', 'location_name',
            'is_active', 'returned_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_provenance(self, obj):
        return 'issue' if obj.issue_id is not None else 'direct'

    def get_item_id(self, obj):
        item = obj.resolved_item
        return item.id if item else None

    def get_item_name(self, obj):
        item = obj.resolved_item
        return item.name if item else None

    def get_item_serial_number(self, obj):
        item = obj.resolved_item
        return item.serial_number if item else None


class InwardInputSerializer(serializers.Serializer):
    condition = serializers.ChoiceField(choices=Return.CONDITION_CHOICES)
    image = serializers.FileField(required=False)
    return_image = serializers.CharField(required=False, allow_blank=True)
    status_id = serializers.IntegerField(required=False, allow_null=True)
    received_by = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('image') and not (attrs.get('return_image') or '').strip():
            raise serializers.ValidationError({'image': 'A return image is required.'})
        return attrs


class ReturnCreateSerializer(InwardInputSerializer):
    """Input for an inward against an issue; returned_by comes from the request user"""
    issue_id = serializers.IntegerField()


class ReceiveMissingSerializer(InwardInputSerializer):
    """Input for receiving a missing item directly"""
    item_id = serializers.IntegerField()
    company_id = serializers.IntegerField(required=False, allow_null=True)
    contractor_id = serializers.IntegerField(required=False, allow_null=True)
    machine_id = serializers.IntegerField(required=False, allow_null=True)
    location_id = serializers.IntegerField(required=False, allow_null=True)


class ReturnUpdateSerializer(serializers.ModelSerializer):
    """Administrative edit; provenance, condition and image are fixed"""
    class Meta:
        model = Return
        fields = ['remarks', 'received_by', 'status']

    def update(self, instance, validated_data):
        # Only the edited columns; is_active is owned by the activate / deactivate endpoints
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data, 'updated_at'])
        return instance
