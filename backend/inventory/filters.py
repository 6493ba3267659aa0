"""
Ledger query engine.

List and search views describe what they want with a TransactionFilters
value; the functions below turn it into a single Q predicate. Every helper
returns a Q (an empty Q() when it has nothing to say), and predicates are
only ever combined through all_of / any_of, so each piece can be checked on
its own without touching the database.
"""
from dataclasses import dataclass, field

import django_filters
from django.db.models import Q

from backend.catalog.models import Item
from .models import Issue, Return

STATUS_ALL = 'all'
STATUS_ACTIVE = 'active'
STATUS_INACTIVE = 'inactive'

RETURN_SEARCH_FIELDS = [
    'return_code',
    'status__name',
    'issue__issue_no',
    'issue__item__name',
    'issue__item__serial_number',
    'item__name',
    'item__serial_number',
    'issue__company__name',
    'issue__contractor__name',
    'issue__machine__name',
    'issue__issued_to',
]

ISSUE_SEARCH_FIELDS = [
    'issue_no',
    'item__name',
    'item__serial_number',
    'company__name',
    'contractor__name',
    'machine__name',
    'location__name',
    'issued_to',
]


def split_values(value):
    """
    Flatten a query value into its parts.

    Accepts a comma-separated string or a list of them (a key repeated in the
    query string), so '1,2', ['1', '2'] and ['1,2', '3'] all work.
    """
    if not value:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [part for chunk in value for part in str(chunk).split(',')]


def parse_ids(value):
    """'1, 2,x,3' -> [1, 2, 3]; anything that isn't an integer is dropped"""
    ids = []
    for part in split_values(value):
        try:
            ids.append(int(str(part).strip()))
        except ValueError:
            continue
    return ids


def parse_conditions(value):
    return [c.strip() for c in split_values(value) if c.strip() in Return.CONDITIONS]


def parse_flag(value):
    return str(value).lower() == 'true' if value is not None else False


@dataclass
class TransactionFilters:
    """Filter object shared by the return and issue list views"""
    status: str = STATUS_ALL
    company_ids: list = field(default_factory=list)
    contractor_ids: list = field(default_factory=list)
    machine_ids: list = field(default_factory=list)
    location_ids: list = field(default_factory=list)
    item_ids: list = field(default_factory=list)
    conditions: list = field(default_factory=list)
    operator_name: str = ''
    search: str = ''
    only_pending_inward: bool = False
    hide_issued_items: bool = False

    @classmethod
    def from_query_params(cls, params):
        """
        Build filters from request query params.

        Accepts snake_case keys and the camelCase keys older clients send
        (companyIds, operatorName, ...).
        """
        def get(key, alt=None):
            value = params.get(key)
            if value is None and alt:
                value = params.get(alt)
            return value

        def get_list(key, alt=None):
            for name in (key, alt):
                if name and name in params:
                    if hasattr(params, 'getlist'):
                        return params.getlist(name)
                    return params[name]
            return None

        status = (get('status') or '').strip().lower()
        if status not in (STATUS_ACTIVE, STATUS_INACTIVE):
            status = STATUS_ALL

        return cls(
            status=status,
            company_ids=parse_ids(get_list('company_ids', 'companyIds')),
            contractor_ids=parse_ids(get_list('contractor_ids', 'contractorIds')),
            machine_ids=parse_ids(get_list('machine_ids', 'machineIds')),
            location_ids=parse_ids(get_list('location_ids', 'locationIds')),
            item_ids=parse_ids(get_list('item_ids', 'itemIds')),
            conditions=parse_conditions(get_list('conditions')),
            operator_name=(get('operator_name', 'operatorName') or '').strip(),
            search=(get('search') or '').strip(),
            only_pending_inward=parse_flag(get('only_pending_inward', 'onlyPendingInward')),
            hide_issued_items=parse_flag(get('hide_issued_items', 'hideIssuedItems')),
        )

    def has_active_filters(self):
        return any([
            self.status != STATUS_ALL,
            self.company_ids, self.contractor_ids, self.machine_ids,
            self.location_ids, self.item_ids, self.conditions,
            self.operator_name, self.search,
            self.only_pending_inward, self.hide_issued_items,
        ])


# Combinators

def all_of(*predicates):
    """AND of the non-empty predicates; Q() when there are none"""
    combined = Q()
    for predicate in predicates:
        if predicate:
            combined &= predicate
    return combined


def any_of(*predicates):
    """OR of the non-empty predicates; Q() when there are none"""
    combined = Q()
    for predicate in predicates:
        if predicate:
            combined |= predicate
    return combined


# Predicates

def values_in(lookup, values):
    if not values:
        return Q()
    return Q(**{f'{lookup}__in': list(values)})


def text_contains(lookup, text):
    if not text:
        return Q()
    return Q(**{f'{lookup}__icontains': text})


def search_any(lookups, text):
    if not text:
        return Q()
    return any_of(*(text_contains(lookup, text) for lookup in lookups))


def active_status(status, lookup='is_active'):
    if status == STATUS_ACTIVE:
        return Q(**{lookup: True})
    if status == STATUS_INACTIVE:
        return Q(**{lookup: False})
    return Q()


def item_in_either_provenance(item_ids):
    return any_of(values_in('issue__item_id', item_ids), values_in('item_id', item_ids))


def not_currently_issued():
    return all_of(
        ~Q(issue__item__status=Item.STATUS_ISSUED),
        ~Q(item__status=Item.STATUS_ISSUED),
    )


def build_return_predicate(filters):
    """Single Q selecting the returns matching `filters`"""
    return all_of(
        active_status(filters.status),
        values_in('issue__company_id', filters.company_ids),
        values_in('issue__contractor_id', filters.contractor_ids),
        values_in('issue__machine_id', filters.machine_ids),
        values_in('issue__location_id', filters.location_ids),
        item_in_either_provenance(filters.item_ids),
        values_in('condition', filters.conditions),
        text_contains('issue__issued_to', filters.operator_name),
        search_any(RETURN_SEARCH_FIELDS, filters.search),
        not_currently_issued() if filters.hide_issued_items else Q(),
    )


def build_issue_predicate(filters):
    """Single Q selecting the issues matching `filters`; issues have no active flag"""
    return all_of(
        values_in('company_id', filters.company_ids),
        values_in('contractor_id', filters.contractor_ids),
        values_in('machine_id', filters.machine_ids),
        values_in('location_id', filters.location_ids),
        values_in('item_id', filters.item_ids),
        text_contains('issued_to', filters.operator_name),
        search_any(ISSUE_SEARCH_FIELDS, filters.search),
        Q(is_returned=False) if filters.only_pending_inward else Q(),
    )


class TransactionFilterSet(django_filters.FilterSet):
    """
    FilterSet front for the query engine.

    The individual params are declared so they show up in the browsable API;
    the actual filtering happens once, in filter_queryset, from the whole
    parsed TransactionFilters.
    """
    status = django_filters.CharFilter(method='filter_noop', label='Status (all/active/inactive)')
    company_ids = django_filters.CharFilter(method='filter_noop', label='Company IDs')
    contractor_ids = django_filters.CharFilter(method='filter_noop', label='Contractor IDs')
    machine_ids = django_filters.CharFilter(method='filter_noop', label='Machine IDs')
    location_ids = django_filters.CharFilter(method='filter_noop', label='Location IDs')
    item_ids = django_filters.CharFilter(method='filter_noop', label='Item IDs')
    operator_name = django_filters.CharFilter(method='filter_noop', label='Operator name')
    search = django_filters.CharFilter(method='filter_noop', label='Search')

    def filter_noop(self, queryset, name, value):
        return queryset

    @property
    def transaction_filters(self):
        return TransactionFilters.from_query_params(self.data)

    def build_predicate(self, filters):
        raise NotImplementedError

    def filter_queryset(self, queryset):
        return queryset.filter(self.build_predicate(self.transaction_filters))


class ReturnFilter(TransactionFilterSet):
    conditions = django_filters.CharFilter(method='filter_noop', label='Conditions')
    hide_issued_items = django_filters.CharFilter(method='filter_noop', label='Hide items currently issued')

    class Meta:
        model = Return
        fields = ['status', 'company_ids', 'contractor_ids', 'machine_ids', 'location_ids',
                  'item_ids', 'conditions', 'operator_name', 'search', 'hide_issued_items']

    def build_predicate(self, filters):
        return build_return_predicate(filters)


class IssueFilter(TransactionFilterSet):
    only_pending_inward = django_filters.CharFilter(method='filter_noop', label='Only issues awaiting inward')

    class Meta:
        model = Issue
        fields = ['company_ids', 'contractor_ids', 'machine_ids', 'location_ids',
                  'item_ids', 'operator_name', 'search', 'only_pending_inward']

    def build_predicate(self, filters):
        return build_issue_predicate(filters)
