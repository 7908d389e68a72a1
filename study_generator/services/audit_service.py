"""Admin audit log entries."""

ADMIN_ACTION_TYPES = (
    'user_approved',
    'user_rejected',
    'user_blocked',
    'user_unblocked',
    'role_changed',
    'plan_changed',
    'quotas_changed',
    'settings_updated',
    'payment_confirmed',
    'payment_rejected',
)


def format_action_label(action_type):
    """'user_approved' -> 'User Approved'."""
    words = [word for word in str(action_type or '').split('_') if word]
    return ' '.join(word[:1].upper() + word[1:] for word in words) or 'Unknown'


def build_admin_action(decoded_token, action_type, target_user_id='', details=None, *, time_module):
    if action_type not in ADMIN_ACTION_TYPES:
        raise ValueError(f"Unknown admin action type: {action_type}")
    token = decoded_token or {}
    return {
        'admin_id': token.get('uid', ''),
        'admin_email': token.get('email', ''),
        'action_type': action_type,
        'target_user_id': target_user_id or '',
        'details': details or {},
        'timestamp': time_module.time(),
    }


def serialize_action(doc):
    entry = doc.to_dict() or {}
    return {
        'id': doc.id,
        'admin_id': entry.get('admin_id', ''),
        'admin_email': entry.get('admin_email', ''),
        'action_type': entry.get('action_type', ''),
        'label': format_action_label(entry.get('action_type', '')),
        'target_user_id': entry.get('target_user_id', ''),
        'details': entry.get('details', {}) or {},
        'timestamp': entry.get('timestamp', 0),
    }
