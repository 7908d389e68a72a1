"""User profile creation, validation and serialization."""

import re

from . import quota_service

REGISTRATION_FIELDS = ('real_name', 'father_name', 'whatsapp_number', 'batch_year', 'class_or_degree')
REGISTRATION_FIELD_LABELS = {
    'real_name': 'Real name',
    'father_name': "Father's name",
    'whatsapp_number': 'WhatsApp number',
    'batch_year': 'Batch year',
    'class_or_degree': 'Class or degree',
}
EDITABLE_PROFILE_FIELDS = ('bio', 'profile_photo', 'whatsapp_number', 'class_or_degree', 'batch_year')
MAX_FIELD_LEN = 120
MAX_BIO_LEN = 1000
MAX_PHOTO_URL_LEN = 2048
WHATSAPP_RE = re.compile(r'^\+?[0-9][0-9 -]{6,19}$')
BATCH_YEAR_RE = re.compile(r'^(19|20)\d{2}$')


def _clean(value, max_len=MAX_FIELD_LEN):
    return str(value or '').strip()[:max_len]


def validate_field(field, value):
    if field == 'whatsapp_number' and not WHATSAPP_RE.match(value):
        return 'Please enter a valid WhatsApp number.'
    if field == 'batch_year' and not BATCH_YEAR_RE.match(value):
        return 'Batch year must be a four-digit year.'
    if field == 'profile_photo' and value and not value.startswith('https://'):
        return 'Profile photo must be an https URL.'
    return ''


def sanitize_registration_form(form):
    """Return (fields, error) from the sign-up form."""
    fields = {}
    missing = []
    for field in REGISTRATION_FIELDS:
        value = _clean(form.get(field))
        if not value:
            missing.append(REGISTRATION_FIELD_LABELS[field])
            continue
        error = validate_field(field, value)
        if error:
            return {}, error
        fields[field] = value
    if missing:
        return {}, f"Missing required fields: {', '.join(missing)}"
    return fields, ''


def build_new_profile(uid, email, fields=None, *, now_ts, verification_status='pending'):
    profile = {
        'uid': uid,
        'email': str(email or '').strip().lower(),
        'real_name': '',
        'father_name': '',
        'whatsapp_number': '',
        'batch_year': '',
        'class_or_degree': '',
        'medical_id_card_url': '',
        'profile_photo': '',
        'bio': '',
        'role': 'user',
        'plan': 'free',
        'badge': quota_service.PLAN_BADGES['free'],
        'verification_status': verification_status,
        'is_blocked': False,
        'created_at': now_ts,
        'approved_at': None,
        'approved_by': '',
    }
    for quota_type in quota_service.QUOTA_TYPES:
        profile[f'custom_daily_{quota_type}'] = None
    profile.update(fields or {})
    return profile


def sanitize_profile_update(payload):
    """Return (updates, error) for a self-service profile PATCH."""
    if not isinstance(payload, dict):
        return {}, 'Invalid profile payload'
    updates = {}
    for field in EDITABLE_PROFILE_FIELDS:
        if field not in payload:
            continue
        max_len = MAX_BIO_LEN if field == 'bio' else MAX_PHOTO_URL_LEN if field == 'profile_photo' else MAX_FIELD_LEN
        value = _clean(payload.get(field), max_len)
        if field in REGISTRATION_FIELDS and not value:
            return {}, f"{REGISTRATION_FIELD_LABELS[field]} cannot be empty."
        error = validate_field(field, value)
        if error:
            return {}, error
        updates[field] = value
    if not updates:
        return {}, 'No editable fields provided'
    return updates, ''


def serialize_profile(profile, include_private=True):
    profile = profile or {}
    data = {
        'uid': profile.get('uid', ''),
        'email': profile.get('email', ''),
        'real_name': profile.get('real_name', ''),
        'profile_photo': profile.get('profile_photo', ''),
        'bio': profile.get('bio', ''),
        'role': profile.get('role', 'user'),
        'plan': quota_service.sanitize_plan(profile.get('plan')),
        'badge': profile.get('badge', quota_service.PLAN_BADGES['free']),
        'verification_status': profile.get('verification_status', 'pending'),
        'is_blocked': bool(profile.get('is_blocked', False)),
        'created_at': profile.get('created_at', 0),
    }
    if include_private:
        for field in ('father_name', 'whatsapp_number', 'batch_year', 'class_or_degree', 'medical_id_card_url',
                      'approved_at', 'approved_by', 'plan_expires_at'):
            data[field] = profile.get(field)
        data['custom_quotas'] = {
            quota_type: profile.get(f'custom_daily_{quota_type}')
            for quota_type in quota_service.QUOTA_TYPES
        }
    return data


def display_name(profile):
    profile = profile or {}
    return profile.get('real_name') or profile.get('email') or profile.get('uid', '')
