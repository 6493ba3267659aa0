import logging
from contextlib import contextmanager

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.catalog.models import Item
from backend.core.exceptions import InvalidState, LedgerError, NotFound, ValidationError
from backend.core.storage import discard_image, save_inward_image
from backend.core.utils import create_audit_log
from . import services
from .filters import IssueFilter, ReturnFilter
from .models import Issue, Return, Status
from .serializers import (
    IssueSerializer, IssueCreateSerializer, ReturnSerializer, ReturnCreateSerializer,
    ReceiveMissingSerializer, ReturnUpdateSerializer, StatusSerializer,
)

logger = logging.getLogger('backend.inventory')


def _store_inward_image(validated_data, serial_number):
    """Path of the uploaded inward image, or the pre-stored path sent by the client"""
    uploaded = validated_data.get('image')
    if uploaded:
        return save_inward_image(uploaded, serial_number)
    return validated_data.get('return_image', '').strip()


@contextmanager
def _inward_image(validated_data, serial_number):
    """
    Store the inward image for the duration of a ledger call.

    An uploaded file is removed again when the call is rejected, so refused
    inwards leave nothing behind in storage.
    """
    path = _store_inward_image(validated_data, serial_number)
    try:
        yield path
    except LedgerError:
        if validated_data.get('image'):
            discard_image(path)
        raise


def _get_return_or_404(pk):
    inward = Return.objects.hydrated().filter(pk=pk).first()
    if inward is None:
        raise NotFound(f"Return {pk} not found.")
    return inward


# Issues (outward)

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def issue_list_create(request):
    """List issues (filtered) or issue an item"""
    if request.method == 'GET':
        filterset = IssueFilter(request.query_params, queryset=Issue.objects.hydrated().order_by('-issued_at', '-id'))
        serializer = IssueSerializer(filterset.qs, many=True)
        return Response(serializer.data)

    serializer = IssueCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    issue = services.create_issue(
        data['item_id'],
        request.user,
        company_id=data.get('company_id'),
        contractor_id=data.get('contractor_id'),
        machine_id=data.get('machine_id'),
        location_id=data.get('location_id'),
        category_id=data.get('category_id'),
        issued_to=data.get('issued_to', ''),
        remarks=data.get('remarks', ''),
    )

    create_audit_log(
        request=request,
        action='outward_create',
        model_name='Issue',
        object_id=str(issue.id),
        object_name=issue.item.name,
        object_reference=issue.issue_no,
        changes={'item_id': issue.item_id, 'issued_to': issue.issued_to, 'item_status': issue.item.status}
    )
    return Response(IssueSerializer(issue).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def issue_active(request):
    """Issues still awaiting their inward"""
    return Response(IssueSerializer(Issue.objects.active(), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def issue_detail(request, pk):
    issue = Issue.objects.find_by_id(pk)
    if issue is None:
        raise NotFound(f"Issue {pk} not found.")
    return Response(IssueSerializer(issue).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def issue_by_issue_no(request, issue_no):
    issue = Issue.objects.find_by_issue_no(issue_no)
    if issue is None:
        raise NotFound(f"Issue {issue_no} not found.")
    return Response(IssueSerializer(issue).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def issue_next_code(request):
    """Advisory only; the real code is derived again when the issue is created"""
    return Response({'code': Issue.objects.generate_issue_no()})


# Returns (inward)

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def return_list_create(request):
    """Filtered return ledger, or close an issue with an inward"""
    if request.method == 'GET':
        filterset = ReturnFilter(request.query_params, queryset=Return.objects.hydrated().order_by('-returned_at', '-id'))
        serializer = ReturnSerializer(filterset.qs, many=True)
        return Response(serializer.data)

    serializer = ReturnCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    issue = Issue.objects.find_by_id(data['issue_id'])
    if issue is None:
        raise NotFound(f"Issue {data['issue_id']} not found.")
    if issue.is_returned:
        raise InvalidState(f"Issue {issue.issue_no} is already returned.")

    with _inward_image(data, issue.item.serial_number) as return_image:
        inward = services.create_return(
            issue.id,
            data['condition'],
            request.user,
            return_image,
            remarks=data.get('remarks', ''),
            received_by=data.get('received_by', ''),
            status_id=data.get('status_id'),
        )

    item = inward.resolved_item
    create_audit_log(
        request=request,
        action='inward_create',
        model_name='Return',
        object_id=str(inward.id),
        object_name=item.name,
        object_reference=inward.return_code,
        changes={'issue_no': issue.issue_no, 'condition': inward.condition, 'item_status': item.status}
    )
    return Response(ReturnSerializer(inward).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def return_receive_missing(request):
    """Receive a missing item back into stock without an issue"""
    serializer = ReceiveMissingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    item = Item.objects.filter(pk=data['item_id']).first()
    if item is None:
        raise NotFound(f"Item {data['item_id']} not found.")
    if data['condition'] == Return.CONDITION_MISSING:
        raise ValidationError("A missing item cannot be received with condition 'Missing'.")
    if item.status != Item.STATUS_MISSING:
        raise InvalidState(f"Item '{item.name}' is not missing (status: {item.status}).")

    with _inward_image(data, item.serial_number) as return_image:
        inward = services.receive_missing_item(
            item.id,
            data['condition'],
            request.user,
            return_image,
            remarks=data.get('remarks', ''),
            received_by=data.get('received_by', ''),
            status_id=data.get('status_id'),
            company_id=data.get('company_id'),
            contractor_id=data.get('contractor_id'),
            machine_id=data.get('machine_id'),
            location_id=data.get('location_id'),
        )

    create_audit_log(
        request=request,
        action='missing_received',
        model_name='Return',
        object_id=str(inward.id),
        object_name=item.name,
        object_reference=inward.return_code,
        changes={'item_id': item.id, 'condition': inward.condition, 'item_status': inward.item.status}
    )
    return Response(ReturnSerializer(inward).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def return_detail(request, pk):
    """Retrieve a return, or edit its remarks / received-by / status label"""
    inward = _get_return_or_404(pk)

    if request.method == 'GET':
        return Response(ReturnSerializer(inward).data)

    serializer = ReturnUpdateSerializer(inward, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    old_data = {'remarks': inward.remarks, 'received_by': inward.received_by, 'status': inward.status_id}
    serializer.save()
    new_data = {'remarks': inward.remarks, 'received_by': inward.received_by, 'status': inward.status_id}
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
    if changes:
        create_audit_log(
            request=request,
            action='inward_update',
            model_name='Return',
            object_id=str(inward.id),
            object_reference=inward.return_code,
            changes=changes
        )
    return Response(ReturnSerializer(_get_return_or_404(pk)).data)


def _toggle_active(request, pk, active):
    inward = _get_return_or_404(pk)
    if active:
        Return.objects.set_active(inward.id)
    else:
        Return.objects.set_inactive(inward.id)
    logger.info(f"Return {inward.return_code} marked {'active' if active else 'inactive'} by {request.user.username}")
    create_audit_log(
        request=request,
        action='inward_activate' if active else 'inward_deactivate',
        model_name='Return',
        object_id=str(inward.id),
        object_reference=inward.return_code,
        changes={'is_active': {'old': inward.is_active, 'new': active}}
    )
    return Response(ReturnSerializer(_get_return_or_404(pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def return_set_active(request, pk):
    return _toggle_active(request, pk, True)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def return_set_inactive(request, pk):
    return _toggle_active(request, pk, False)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def return_by_issue(request, issue_id):
    return Response(ReturnSerializer(Return.objects.by_issue(issue_id), many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def return_next_code(request):
    """Advisory only; the real code is derived again when the return is created"""
    return Response({'code': Return.objects.generate_return_code()})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def status_list(request):
    """Active return status labels"""
    statuses = Status.objects.filter(is_active=True).order_by('name')
    return Response(StatusSerializer(statuses, many=True).data)
