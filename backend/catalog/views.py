import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.exceptions import Conflict
from backend.core.utils import create_audit_log
from .models import Item, ItemCategory
from .serializers import ItemSerializer, ItemCategorySerializer, MissingItemSerializer

logger = logging.getLogger('backend.catalog')

TRACKED_FIELDS = ['name', 'serial_number', 'description', 'category_id', 'image', 'is_active']


def _parse_bool(value):
    if value is None:
        return None
    return str(value).lower() in ('1', 'true', 'yes')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def item_list_create(request):
    """List items (optionally by status / is_active) or create a new item"""
    if request.method == 'GET':
        queryset = Item.objects.select_related('category').all()

        item_status = request.query_params.get('status')
        if item_status:
            queryset = queryset.filter(status=item_status.upper())

        is_active = _parse_bool(request.query_params.get('is_active'))
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        category = request.query_params.get('category')
        if category and category.isdigit():
            queryset = queryset.filter(category_id=int(category))

        serializer = ItemSerializer(queryset.order_by('name'), many=True)
        return Response(serializer.data)

    serializer = ItemSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    serial_number = serializer.validated_data.get('serial_number')
    if Item.objects.serial_number_exists(serial_number):
        raise Conflict(f"An item with serial number '{serial_number}' already exists.")

    item = serializer.save()
    logger.info(f"Item created: {item.name} (id={item.id}, serial={item.serial_number})")
    create_audit_log(
        request=request,
        action='create',
        model_name='Item',
        object_id=str(item.id),
        object_name=item.name,
        object_reference=item.serial_number,
        changes={'name': item.name, 'serial_number': item.serial_number, 'status': item.status}
    )
    return Response(ItemSerializer(item).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_active(request):
    """Active items, optionally narrowed by status"""
    item_status = request.query_params.get('status')
    queryset = Item.objects.active(status=item_status.upper() if item_status else None).select_related('category')
    return Response(ItemSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_available(request):
    """Items that can be issued right now"""
    queryset = Item.objects.available().select_related('category')
    return Response(ItemSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_missing(request):
    """Missing items with the inward code that reported them"""
    queryset = (
        Item.objects.by_status(Item.STATUS_MISSING).filter(is_active=True)
        .select_related('category').with_source_inward_code()
    )
    return Response(MissingItemSerializer(queryset, many=True).data)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def item_detail(request, pk):
    """Retrieve or update an item"""
    item = get_object_or_404(Item.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        return Response(ItemSerializer(item).data)

    serializer = ItemSerializer(item, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)

    if 'serial_number' in serializer.validated_data:
        serial_number = serializer.validated_data['serial_number']
        if Item.objects.serial_number_exists_excluding(serial_number, item.id):
            raise Conflict(f"An item with serial number '{serial_number}' already exists.")

    old_data = {field: getattr(item, field) for field in TRACKED_FIELDS}
    serializer.save()
    new_data = {field: getattr(item, field) for field in TRACKED_FIELDS}
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in TRACKED_FIELDS if old_data[k] != new_data[k]}
    if changes:
        create_audit_log(
            request=request,
            action='update',
            model_name='Item',
            object_id=str(item.id),
            object_name=item.name,
            object_reference=item.serial_number,
            changes=changes
        )
    # Re-read so the response carries the stored status, not the one loaded above
    item.refresh_from_db()
    return Response(ItemSerializer(item).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_category_list(request):
    """Active item categories"""
    categories = ItemCategory.objects.filter(is_active=True).order_by('name')
    return Response(ItemCategorySerializer(categories, many=True).data)
