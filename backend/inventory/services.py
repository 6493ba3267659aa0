"""
Lifecycle orchestration for issues and returns.

Each entry point is one unit of work: it runs inside a single atomic block,
locks the rows it is about to move with select_for_update, inserts the
ledger row first and moves the item's status last. A lost race surfaces as
Conflict and the whole unit is re-run by retry_on_conflict with freshly read
counts and state.
"""
import logging

from django.db import IntegrityError, transaction

from backend.catalog.models import Item
from backend.core.exceptions import (
    Conflict, InvalidState, NotFound, ValidationError, is_unique_violation, retry_on_conflict,
)
from backend.locations.models import Location
from backend.parties.models import Company, Contractor, Machine
from .models import DirectReceipt, FromIssue, Issue, Return, Status

logger = logging.getLogger('backend.inventory')


def _load_reference(model, pk, label):
    if pk in (None, ''):
        return None
    obj = model.objects.filter(pk=pk).first()
    if obj is None:
        raise NotFound(f"{label} {pk} not found.")
    if not obj.is_active:
        raise InvalidState(f"{label} '{obj.name}' is inactive.")
    return obj


def resolve_context(company_id=None, contractor_id=None, machine_id=None, location_id=None):
    """
    Load the optional context references of a transaction.

    Each supplied id must exist and be active. A location must belong to the
    supplied company and a machine to the supplied contractor.
    """
    context = {
        'company': _load_reference(Company, company_id, 'Company'),
        'contractor': _load_reference(Contractor, contractor_id, 'Contractor'),
        'machine': _load_reference(Machine, machine_id, 'Machine'),
        'location': _load_reference(Location, location_id, 'Location'),
    }

    location, company = context['location'], context['company']
    if location and company and location.company_id is not None and location.company_id != company.id:
        raise ValidationError(f"Location '{location.name}' does not belong to company '{company.name}'.")

    machine, contractor = context['machine'], context['contractor']
    if machine and contractor and machine.contractor_id is not None and machine.contractor_id != contractor.id:
        raise ValidationError(f"Machine '{machine.name}' does not belong to contractor '{contractor.name}'.")

    return context


def _load_status(status_id):
    if status_id in (None, ''):
        return None
    status = Status.objects.filter(pk=status_id).first()
    if status is None:
        raise NotFound(f"Status {status_id} not found.")
    return status


def _validate_inward(condition, return_image):
    if condition not in Return.CONDITIONS:
        raise ValidationError(f"Invalid condition '{condition}'. Expected one of: {', '.join(Return.CONDITIONS)}.")
    if not return_image or not str(return_image).strip():
        raise ValidationError('A return image is required.')


def _lock_item(item_id):
    item = Item.objects.select_for_update().filter(pk=item_id).first()
    if item is None:
        raise NotFound(f"Item {item_id} not found.")
    return item


def _as_conflict(exc, what):
    logger.info(f"Integrity conflict while creating {what}: {exc}")
    return Conflict(f"Concurrent {what} creation collided; retry the request.")


@retry_on_conflict()
def create_issue(item_id, issued_by, *, company_id=None, contractor_id=None, machine_id=None,
                 location_id=None, category_id=None, issued_to='', remarks=''):
    """Issue an available item (outward). Returns the hydrated Issue."""
    try:
        with transaction.atomic():
            item = _lock_item(item_id)
            if not item.is_active:
                raise InvalidState(f"Item '{item.name}' is inactive.")
            if item.status != Item.STATUS_AVAILABLE:
                logger.warning(f"Issue rejected: item {item.id} is {item.status}")
                raise InvalidState(f"Item '{item.name}' is not available (status: {item.status}).")

            if category_id not in (None, '') and str(item.category_id) != str(category_id):
                raise ValidationError(f"Item '{item.name}' does not belong to category {category_id}.")

            context = resolve_context(company_id, contractor_id, machine_id, location_id)

            issue = Issue.objects.create(
                issue_no=Issue.objects.generate_issue_no(),
                item=item,
                issued_by=issued_by,
                issued_to=(issued_to or '').strip(),
                remarks=remarks or '',
                **context
            )
            item.transition(Item.EVENT_ISSUE)
    except IntegrityError as e:
        if is_unique_violation(e):
            raise _as_conflict(e, 'issue') from e
        raise

    logger.info(f"Issue {issue.issue_no} created for item {item.id} by {issued_by}")
    return Issue.objects.find_by_id(issue.id)


@retry_on_conflict()
def create_return(issue_id, condition, returned_by, return_image, *, remarks='', received_by='', status_id=None):
    """
    Close an open issue (inward).

    Condition 'Missing' moves the item to MISSING, anything else back to
    AVAILABLE. Returns the hydrated Return.
    """
    _validate_inward(condition, return_image)

    try:
        with transaction.atomic():
            issue = Issue.objects.select_for_update().filter(pk=issue_id).first()
            if issue is None:
                raise NotFound(f"Issue {issue_id} not found.")
            if issue.is_returned:
                logger.warning(f"Return rejected: issue {issue.issue_no} already returned")
                raise InvalidState(f"Issue {issue.issue_no} is already returned.")

            item = _lock_item(issue.item_id)
            status = _load_status(status_id)

            inward = Return.objects.create(
                provenance=FromIssue(issue.id),
                return_code=Return.objects.generate_return_code(),
                condition=condition,
                status=status,
                returned_by=returned_by,
                return_image=return_image,
                received_by=(received_by or '').strip(),
                remarks=remarks or '',
                company_id=issue.company_id,
                contractor_id=issue.contractor_id,
                machine_id=issue.machine_id,
                location_id=issue.location_id,
            )

            if not Issue.objects.mark_as_returned(issue.id):
                raise Conflict(f"Issue {issue.issue_no} was returned concurrently.")

            event = Item.EVENT_REPORT_MISSING if condition == Return.CONDITION_MISSING else Item.EVENT_RETURN
            item.transition(event)
    except IntegrityError as e:
        if is_unique_violation(e):
            raise _as_conflict(e, 'return') from e
        raise

    logger.info(f"Return {inward.return_code} closed issue {issue.issue_no} ({condition}) -> item {item.id} {item.status}")
    return Return.objects.hydrated().get(pk=inward.pk)


@retry_on_conflict()
def receive_missing_item(item_id, condition, returned_by, return_image, *, remarks='', received_by='',
                         status_id=None, company_id=None, contractor_id=None, machine_id=None, location_id=None):
    """Receive a missing item back into stock without an issue (direct inward)"""
    _validate_inward(condition, return_image)
    if condition == Return.CONDITION_MISSING:
        raise ValidationError("A missing item cannot be received with condition 'Missing'.")

    try:
        with transaction.atomic():
            item = _lock_item(item_id)
            if item.status != Item.STATUS_MISSING:
                logger.warning(f"Receive rejected: item {item.id} is {item.status}")
                raise InvalidState(f"Item '{item.name}' is not missing (status: {item.status}).")

            context = resolve_context(company_id, contractor_id, machine_id, location_id)
            status = _load_status(status_id)

            inward = Return.objects.create(
                provenance=DirectReceipt(item.id),
                return_code=Return.objects.generate_return_code(),
                condition=condition,
                status=status,
                returned_by=returned_by,
                return_image=return_image,
                received_by=(received_by or '').strip(),
                remarks=remarks or '',
                **context
            )
            item.transition(Item.EVENT_RECEIVE)
    except IntegrityError as e:
        if is_unique_violation(e):
            raise _as_conflict(e, 'return') from e
        raise

    logger.info(f"Return {inward.return_code} received missing item {item.id} ({condition})")
    return Return.objects.hydrated().get(pk=inward.pk)
