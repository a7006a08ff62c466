"""
Request validation.

Every validator takes the parsed request body and returns a list of
``{'field', 'message'}`` errors; an empty list means the request is valid.
Validators never raise and never mutate the request. Handlers run them
before any I/O.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from goodbricks_shared.keys import KEY_DELIMITER
from goodbricks_shared.types import AUDIENCE_STATUSES, CAMPAIGN_STATUSES


# Email regex pattern (RFC 5322 simplified)
# Validates: local-part@domain with basic character restrictions
EMAIL_PATTERN = re.compile(
    r'^[a-zA-Z0-9.!#$%&\'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
)

AUDIENCE_SELECTION_TYPES = ('tag', 'list', 'all')
RECIPIENT_TYPES = ('groups', 'all_audience')
IMPORT_MODES = ('upsert', 'insert_only')
CREATE_STATUSES = ('draft', 'scheduled')

Errors = List[Dict[str, str]]


def validate_email_format(email: Any) -> bool:
    """
    Validate email format using regex.

    Addresses containing the key delimiter are rejected because emails are
    part of table keys.

    Examples:
        >>> validate_email_format('user@example.com')
        True

        >>> validate_email_format('invalid-email')
        False
    """
    if not email or not isinstance(email, str):
        return False
    email = email.strip()
    return KEY_DELIMITER not in email and EMAIL_PATTERN.match(email) is not None


def is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return False
    return True


def _unexpected(request: Dict[str, Any], allowed: Iterable[str], errors: Errors) -> None:
    for field in sorted(set(request.keys()) - set(allowed)):
        errors.append({'field': field, 'message': 'Unexpected field in request'})


def _required_string(request: Dict[str, Any], field: str, errors: Errors) -> None:
    if field not in request or request[field] is None:
        errors.append({'field': field, 'message': 'Field is required'})
    elif not isinstance(request[field], str):
        errors.append({'field': field, 'message': 'Field must be a string'})
    elif not request[field].strip():
        errors.append({'field': field, 'message': 'Field cannot be empty'})


def _optional_string(request: Dict[str, Any], field: str, errors: Errors) -> None:
    if request.get(field) is not None and not isinstance(request[field], str):
        errors.append({'field': field, 'message': 'Field must be a string'})


def _key_component(request: Dict[str, Any], field: str, errors: Errors, required: bool = False) -> None:
    value = request.get(field)
    if value is None:
        if required:
            errors.append({'field': field, 'message': 'Field is required'})
        return
    if not isinstance(value, str) or not value.strip():
        errors.append({'field': field, 'message': 'Field must be a non-empty string'})
    elif KEY_DELIMITER in value:
        errors.append({'field': field, 'message': f"Field must not contain '{KEY_DELIMITER}'"})


def _id_list(request: Dict[str, Any], field: str, errors: Errors) -> None:
    values = request.get(field)
    if values is None:
        return
    if not isinstance(values, list):
        errors.append({'field': field, 'message': 'Field must be an array of strings'})
        return
    for index, value in enumerate(values):
        if not isinstance(value, str) or not value.strip():
            errors.append({'field': f'{field}[{index}]', 'message': 'Value must be a non-empty string'})
        elif KEY_DELIMITER in value:
            errors.append({'field': f'{field}[{index}]', 'message': f"Value must not contain '{KEY_DELIMITER}'"})


def _email_field(request: Dict[str, Any], field: str, errors: Errors, required: bool = False) -> None:
    if required:
        _required_string(request, field, errors)
    value = request.get(field)
    if isinstance(value, str) and value.strip() and not validate_email_format(value):
        errors.append({'field': field, 'message': 'Invalid email format'})
    elif value is not None and not required and not isinstance(value, str):
        errors.append({'field': field, 'message': 'Field must be a string'})


def _object(request: Dict[str, Any], field: str, errors: Errors) -> bool:
    value = request.get(field)
    if value is None:
        return False
    if not isinstance(value, dict):
        errors.append({'field': field, 'message': 'Field must be an object'})
        return False
    return True


# Audience

def validate_audience_create_request(request: Dict[str, Any]) -> Errors:
    """
    Validate an audience member creation request.

    Examples:
        >>> validate_audience_create_request({
        ...     'email': 'jane@example.com', 'firstName': 'Jane', 'lastName': 'Doe'
        ... })
        []
    """
    errors: Errors = []
    _unexpected(request, {'email', 'firstName', 'lastName', 'tags', 'organization', 'status'}, errors)
    _email_field(request, 'email', errors, required=True)
    _required_string(request, 'firstName', errors)
    _required_string(request, 'lastName', errors)
    _optional_string(request, 'organization', errors)
    _id_list(request, 'tags', errors)
    if request.get('status') is not None and request['status'] not in AUDIENCE_STATUSES:
        errors.append({
            'field': 'status',
            'message': f"Status must be one of: {', '.join(AUDIENCE_STATUSES)}"
        })
    return errors


def validate_audience_update_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    allowed = {'firstName', 'lastName', 'organization', 'status', 'tags', 'addTag', 'removeTag'}
    _unexpected(request, allowed, errors)
    if not any(field in request for field in allowed):
        errors.append({'field': 'body', 'message': 'At least one updatable field is required'})
    for field in ('firstName', 'lastName', 'organization'):
        _optional_string(request, field, errors)
    _id_list(request, 'tags', errors)
    _key_component(request, 'addTag', errors)
    _key_component(request, 'removeTag', errors)
    if request.get('status') is not None and request['status'] not in AUDIENCE_STATUSES:
        errors.append({
            'field': 'status',
            'message': f"Status must be one of: {', '.join(AUDIENCE_STATUSES)}"
        })
    return errors


def validate_audience_import_request(request: Dict[str, Any]) -> Errors:
    """
    Validate a bulk import request.

    Individual members with bad emails are not errors here; the import skips
    and reports them.
    """
    errors: Errors = []
    _unexpected(request, {'members', 'mode', 'appendTags', 'defaultGroups', 'organization'}, errors)

    members = request.get('members')
    if not isinstance(members, list) or not members:
        errors.append({'field': 'members', 'message': 'members array is required and must not be empty'})
    else:
        for index, member in enumerate(members):
            if not isinstance(member, dict):
                errors.append({'field': f'members[{index}]', 'message': 'Member must be an object'})
                continue
            _id_list(member, 'tags', errors)
            _id_list(member, 'groupIds', errors)

    if request.get('mode') is not None and request['mode'] not in IMPORT_MODES:
        errors.append({'field': 'mode', 'message': f"Mode must be one of: {', '.join(IMPORT_MODES)}"})
    if request.get('appendTags') is not None and not isinstance(request['appendTags'], bool):
        errors.append({'field': 'appendTags', 'message': 'Field must be a boolean'})
    _id_list(request, 'defaultGroups', errors)
    _optional_string(request, 'organization', errors)
    return errors


# Groups and organization

def validate_group_create_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    _unexpected(request, {'groupId', 'groupName', 'description', 'isActive'}, errors)
    _required_string(request, 'groupName', errors)
    _key_component(request, 'groupId', errors)
    _optional_string(request, 'description', errors)
    if request.get('isActive') is not None and not isinstance(request['isActive'], bool):
        errors.append({'field': 'isActive', 'message': 'Field must be a boolean'})
    return errors


def validate_group_members_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    _unexpected(request, {'emails'}, errors)
    emails = request.get('emails')
    if not isinstance(emails, list) or not emails:
        errors.append({'field': 'emails', 'message': 'emails is required and must be a non-empty array'})
        return errors
    for index, email in enumerate(emails):
        if not validate_email_format(email):
            errors.append({'field': f'emails[{index}]', 'message': 'Invalid email format'})
    return errors


def validate_org_create_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    _unexpected(
        request,
        {'orgId', 'orgName', 'activeSubscribers', 'description', 'website', 'senderEmail', 'address', 'phone'},
        errors
    )
    _required_string(request, 'orgName', errors)
    _key_component(request, 'orgId', errors)

    subscribers = request.get('activeSubscribers')
    if (
        isinstance(subscribers, bool)
        or not isinstance(subscribers, (int, Decimal))
        or subscribers < 0
        or subscribers != int(subscribers)
    ):
        errors.append({
            'field': 'activeSubscribers',
            'message': 'activeSubscribers is required and must be a non-negative integer'
        })

    for field in ('description', 'website', 'address', 'phone'):
        _optional_string(request, field, errors)
    _email_field(request, 'senderEmail', errors)
    return errors


# Campaigns

def _validate_audience_selection(selection: Any, errors: Errors) -> None:
    if not isinstance(selection, dict):
        errors.append({'field': 'audienceSelection', 'message': 'Field must be an object'})
        return
    if selection.get('type') not in AUDIENCE_SELECTION_TYPES:
        errors.append({
            'field': 'audienceSelection.type',
            'message': f"Type must be one of: {', '.join(AUDIENCE_SELECTION_TYPES)}"
        })
    values = selection.get('values', [])
    if not isinstance(values, list) or not all(isinstance(value, str) for value in values):
        errors.append({'field': 'audienceSelection.values', 'message': 'Values must be an array of strings'})
    elif selection.get('type') == 'tag':
        _id_list({'audienceSelection.values': values}, 'audienceSelection.values', errors)
    elif selection.get('type') == 'list':
        for index, value in enumerate(values):
            if not validate_email_format(value):
                errors.append({'field': f'audienceSelection.values[{index}]', 'message': 'Invalid email format'})


def _validate_recipients(recipients: Any, errors: Errors) -> None:
    if not isinstance(recipients, dict):
        errors.append({'field': 'recipients', 'message': 'Field must be an object'})
        return
    if recipients.get('type') not in RECIPIENT_TYPES:
        errors.append({
            'field': 'recipients.type',
            'message': f"Type must be one of: {', '.join(RECIPIENT_TYPES)}"
        })
    elif recipients.get('type') == 'groups':
        group_ids = recipients.get('groupIds')
        if not isinstance(group_ids, list) or not group_ids:
            errors.append({'field': 'recipients.groupIds', 'message': 'groupIds is required for group recipients'})
        else:
            _id_list({'recipients.groupIds': group_ids}, 'recipients.groupIds', errors)


def _validate_metadata(request: Dict[str, Any], errors: Errors) -> None:
    if not _object(request, 'metadata', errors):
        return
    metadata = request['metadata']
    for field in ('subject', 'fromName', 'previewText'):
        if metadata.get(field) is not None and not isinstance(metadata[field], str):
            errors.append({'field': f'metadata.{field}', 'message': 'Field must be a string'})
    from_email = metadata.get('fromEmail')
    if from_email is not None and not validate_email_format(from_email):
        errors.append({'field': 'metadata.fromEmail', 'message': 'Invalid email format'})


CAMPAIGN_FIELDS = {
    'name', 'description', 'layoutId', 'layoutVersion', 'layoutProps', 'audienceSelection',
    'recipients', 'scheduledAt', 'status', 'metadata', 'fromEmail'
}


def validate_campaign_create_request(request: Dict[str, Any]) -> Errors:
    """
    Validate a campaign creation request.

    Examples:
        >>> validate_campaign_create_request({
        ...     'name': 'Spring appeal',
        ...     'audienceSelection': {'type': 'tag', 'values': ['vip']}
        ... })
        []
    """
    errors: Errors = []
    _unexpected(request, CAMPAIGN_FIELDS, errors)
    _required_string(request, 'name', errors)

    if request.get('audienceSelection') is None:
        errors.append({'field': 'audienceSelection', 'message': 'Field is required'})
    else:
        _validate_audience_selection(request['audienceSelection'], errors)
    if request.get('recipients') is not None:
        _validate_recipients(request['recipients'], errors)

    _optional_string(request, 'description', errors)
    _key_component(request, 'layoutId', errors)
    _key_component(request, 'layoutVersion', errors)
    _object(request, 'layoutProps', errors)
    _email_field(request, 'fromEmail', errors)
    if request.get('scheduledAt') is not None and not is_iso_timestamp(request['scheduledAt']):
        errors.append({'field': 'scheduledAt', 'message': 'Must be an ISO-8601 timestamp'})
    if request.get('status') is not None and request['status'] not in CREATE_STATUSES:
        errors.append({
            'field': 'status',
            'message': f"New campaigns must be one of: {', '.join(CREATE_STATUSES)}"
        })
    _validate_metadata(request, errors)
    return errors


def validate_campaign_update_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    allowed = CAMPAIGN_FIELDS - {'fromEmail', 'layoutProps'}
    _unexpected(request, allowed, errors)
    if not any(field in request for field in allowed):
        errors.append({'field': 'body', 'message': 'At least one updatable field is required'})

    if 'name' in request:
        _required_string(request, 'name', errors)
    if request.get('audienceSelection') is not None:
        _validate_audience_selection(request['audienceSelection'], errors)
    if request.get('recipients') is not None:
        _validate_recipients(request['recipients'], errors)
    _optional_string(request, 'description', errors)
    _key_component(request, 'layoutId', errors)
    _key_component(request, 'layoutVersion', errors)
    if request.get('scheduledAt') is not None and not is_iso_timestamp(request['scheduledAt']):
        errors.append({'field': 'scheduledAt', 'message': 'Must be an ISO-8601 timestamp'})
    if request.get('status') is not None and request['status'] not in CAMPAIGN_STATUSES:
        errors.append({
            'field': 'status',
            'message': f"Status must be one of: {', '.join(CAMPAIGN_STATUSES)}"
        })
    _validate_metadata(request, errors)
    return errors


def validate_campaign_status(status: Optional[str]) -> Errors:
    if status is not None and status not in CAMPAIGN_STATUSES:
        return [{'field': 'status', 'message': f"Status must be one of: {', '.join(CAMPAIGN_STATUSES)}"}]
    return []


# Layouts and email

def validate_layout_create_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    _unexpected(request, {'layoutId', 'version', 'html', 'variables', 'name', 'description', 'category'}, errors)
    _key_component(request, 'layoutId', errors, required=True)
    _key_component(request, 'version', errors)
    _key_component(request, 'category', errors)
    _required_string(request, 'html', errors)
    variables = request.get('variables')
    if variables is not None and (
        not isinstance(variables, list) or not all(isinstance(name, str) and name for name in variables)
    ):
        errors.append({'field': 'variables', 'message': 'Field must be an array of variable names'})
    _optional_string(request, 'name', errors)
    _optional_string(request, 'description', errors)
    return errors


def validate_render_request(request: Dict[str, Any]) -> Errors:
    errors: Errors = []
    _unexpected(request, {'layoutId', 'version', 'component', 'props'}, errors)
    has_layout = request.get('layoutId') is not None
    has_component = request.get('component') is not None
    if has_layout == has_component:
        errors.append({'field': 'layoutId', 'message': 'Exactly one of layoutId or component is required'})
    _key_component(request, 'layoutId', errors)
    _key_component(request, 'version', errors)
    _optional_string(request, 'component', errors)
    _object(request, 'props', errors)
    return errors


def validate_send_email_request(request: Dict[str, Any]) -> Errors:
    """
    Validate a transactional send request.

    Examples:
        >>> validate_send_email_request({
        ...     'recipients': ['a@example.com'], 'subject': 'Hi',
        ...     'content': {'text': 'Hello'}, 'fromEmail': 'org@example.com'
        ... })
        []
    """
    errors: Errors = []
    _unexpected(
        request,
        {'recipients', 'subject', 'content', 'fromEmail', 'fromName', 'replyTo', 'cc', 'bcc', 'tags', 'configurationSet'},
        errors
    )

    recipients = request.get('recipients')
    if not isinstance(recipients, list) or not recipients:
        errors.append({'field': 'recipients', 'message': 'recipients array is required and must not be empty'})
    else:
        for index, email in enumerate(recipients):
            if not validate_email_format(email):
                errors.append({'field': f'recipients[{index}]', 'message': 'Invalid email address'})

    _required_string(request, 'subject', errors)
    content = request.get('content')
    if not isinstance(content, dict) or not (content.get('html') or content.get('text')):
        errors.append({'field': 'content', 'message': 'content with either html or text is required'})

    _email_field(request, 'fromEmail', errors, required=True)
    _optional_string(request, 'fromName', errors)
    _email_field(request, 'replyTo', errors)
    _optional_string(request, 'configurationSet', errors)

    for field in ('cc', 'bcc'):
        values = request.get(field)
        if values is None:
            continue
        if not isinstance(values, list):
            errors.append({'field': field, 'message': 'Field must be an array of emails'})
            continue
        for index, email in enumerate(values):
            if not validate_email_format(email):
                errors.append({'field': f'{field}[{index}]', 'message': 'Invalid email address'})

    tags = request.get('tags')
    if tags is not None and (
        not isinstance(tags, list)
        or not all(isinstance(tag, dict) and isinstance(tag.get('name'), str) and isinstance(tag.get('value'), str) for tag in tags)
    ):
        errors.append({'field': 'tags', 'message': 'Tags must be an array of {name, value} objects'})
    return errors
