import csv
import logging

from django.core.paginator import Paginator
from django.db.models import Count, Q
from django.http import HttpResponse
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.catalog.models import Item
from backend.catalog.serializers import MissingItemSerializer
from backend.core.cache_utils import get_cached_dashboard_metrics, cache_dashboard_metrics
from backend.core.exceptions import NotFound
from backend.inventory.filters import (
    TransactionFilters, all_of, build_issue_predicate, search_any, text_contains, values_in,
)
from backend.inventory.models import Issue, Return
from backend.inventory.serializers import IssueSerializer

logger = logging.getLogger('backend.reports')

PAGE_SIZES = [25, 50, 75, 100]
DEFAULT_PAGE_SIZE = 25

MISSING_ITEM_SEARCH_FIELDS = [
    'name',
    'serial_number',
    'description',
    'issues__issue_no',
    'issues__company__name',
    'issues__contractor__name',
    'issues__machine__name',
    'issues__issued_to',
]


def parse_page(params):
    """(page, limit); limit falls back to the default unless it is one of PAGE_SIZES"""
    try:
        page = max(1, int(params.get('page', 1)))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(params.get('limit') or params.get('rows') or DEFAULT_PAGE_SIZE)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    if limit not in PAGE_SIZES:
        limit = DEFAULT_PAGE_SIZE
    return page, limit


def paginated_response(queryset, serializer_class, page, limit):
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    return Response({
        'results': serializer_class(page_obj, many=True).data,
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def active_issues_queryset(filters):
    return Issue.objects.active().filter(build_issue_predicate(filters))


def missing_items_queryset(filters):
    """Missing items, narrowed through the issues that took them out"""
    predicate = all_of(
        Q(status=Item.STATUS_MISSING),
        values_in('issues__company_id', filters.company_ids),
        values_in('issues__contractor_id', filters.contractor_ids),
        values_in('issues__machine_id', filters.machine_ids),
        values_in('id', filters.item_ids),
        text_contains('issues__issued_to', filters.operator_name),
        search_any(MISSING_ITEM_SEARCH_FIELDS, filters.search),
    )
    return (
        Item.objects.filter(predicate).select_related('category').distinct()
        .with_source_inward_code().order_by('name')
    )


def csv_response(filename_prefix, header, rows):
    filename = f"{filename_prefix}-{timezone.now().date().isoformat()}.csv"
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    writer = csv.writer(response)
    writer.writerow(header)
    writer.writerows(rows)
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_metrics(request):
    """Item counts per status plus issue / return totals"""
    cached_data, cache_key = get_cached_dashboard_metrics()
    if cached_data is not None:
        return Response(cached_data)

    item_counts = Item.objects.aggregate(
        total=Count('id'),
        available=Count('id', filter=Q(status=Item.STATUS_AVAILABLE)),
        issued=Count('id', filter=Q(status=Item.STATUS_ISSUED)),
        missing=Count('id', filter=Q(status=Item.STATUS_MISSING)),
    )
    issue_counts = Issue.objects.aggregate(
        total=Count('id'),
        active=Count('id', filter=Q(is_returned=False)),
    )
    data = {
        'items': item_counts,
        'issues': issue_counts,
        'returns': {'total': Return.objects.get_count()},
    }
    cache_dashboard_metrics(cache_key, data)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def active_issues_report(request):
    """Items currently out in the field, filtered and paginated"""
    filters = TransactionFilters.from_query_params(request.query_params)
    page, limit = parse_page(request.query_params)
    return paginated_response(active_issues_queryset(filters), IssueSerializer, page, limit)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def missing_items_report(request):
    filters = TransactionFilters.from_query_params(request.query_params)
    page, limit = parse_page(request.query_params)
    return paginated_response(missing_items_queryset(filters), MissingItemSerializer, page, limit)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_history(request, item_id):
    """
    Traceability ledger for one item.

    One row per issue and per return (either provenance), newest first.
    """
    item = Item.objects.select_related('category').filter(pk=item_id).first()
    if item is None:
        raise NotFound(f"Item {item_id} not found.")

    rows = []
    for issue in Issue.objects.filter(item_id=item.id).select_related('issued_by'):
        rows.append({
            'type': 'issue',
            'date': issue.issued_at,
            'issue_no': issue.issue_no,
            'return_code': None,
            'description': f"Issued to {issue.issued_to or '-'}",
            'user': issue.issued_by.display_name if issue.issued_by else None,
            'remarks': issue.remarks,
        })

    for inward in Return.objects.for_item(item.id).select_related('issue', 'returned_by'):
        rows.append({
            'type': 'return',
            'date': inward.returned_at,
            'issue_no': inward.issue.issue_no if inward.issue else None,
            'return_code': inward.return_code,
            'description': f"Returned ({inward.condition})" if inward.issue_id else f"Received ({inward.condition})",
            'user': inward.returned_by.display_name if inward.returned_by else None,
            'remarks': inward.remarks,
        })

    rows.sort(key=lambda row: row['date'], reverse=True)

    page, limit = parse_page(request.query_params)
    paginator = Paginator(rows, limit)
    page_obj = paginator.get_page(page)
    return Response({
        'item': {
            'id': item.id,
            'name': item.name,
            'serial_number': item.serial_number,
            'category': item.category.name if item.category else None,
            'status': item.status,
        },
        'results': list(page_obj),
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_active_issues(request):
    filters = TransactionFilters.from_query_params(request.query_params)
    rows = [
        [
            index,
            issue.issue_no,
            issue.item.name,
            issue.item.serial_number or 'N/A',
            issue.company.name if issue.company else 'N/A',
            issue.contractor.name if issue.contractor else 'N/A',
            issue.machine.name if issue.machine else 'N/A',
            issue.location.name if issue.location else 'N/A',
            issue.issued_to or 'N/A',
            issue.issued_at.strftime('%Y-%m-%d %H:%M'),
        ]
        for index, issue in enumerate(active_issues_queryset(filters), start=1)
    ]
    logger.info(f"Active issues export ({len(rows)} rows) by {request.user.username}")
    return csv_response(
        'active-issues',
        ['Sr.No', 'Issue No', 'Item Name', 'Serial Number', 'Company', 'Contractor',
         'Machine', 'Location', 'Issued To', 'Issued At'],
        rows,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_missing_items(request):
    filters = TransactionFilters.from_query_params(request.query_params)
    rows = [
        [
            index,
            item.name,
            item.serial_number or 'N/A',
            item.category.name if item.category else 'N/A',
            item.description or 'N/A',
            item.source_inward_code or 'N/A',
        ]
        for index, item in enumerate(missing_items_queryset(filters), start=1)
    ]
    logger.info(f"Missing items export ({len(rows)} rows) by {request.user.username}")
    return csv_response(
        'missing-items',
        ['Sr.No', 'Item Name', 'Serial Number', 'Category', 'Description', 'Source Inward'],
        rows,
    )
