"""Role and verification gating for signed-in users."""

ROLES = ('super_admin', 'admin', 'moderator', 'user')
ADMIN_ROLES = {'super_admin', 'admin'}
MODERATOR_ROLES = {'super_admin', 'admin', 'moderator'}
VERIFICATION_STATUSES = ('pending', 'approved', 'rejected')

AUTH_PAGE = '/auth'
VERIFICATION_PENDING_PAGE = '/verification-pending'

BLOCKED_MESSAGE = 'Your account has been blocked. Please contact support.'
PENDING_MESSAGE = 'Your account is pending verification. Please wait for admin approval.'
REJECTED_MESSAGE = 'Your account verification was rejected. Please contact support.'


def sanitize_role(value, default='user'):
    role = str(value or '').strip().lower()
    return role if role in ROLES else default


def resolve_effective_role(profile, decoded_token=None, *, admin_emails=(), admin_uids=()):
    """Stored role, promoted to super_admin for bootstrap admins from the environment."""
    profile = profile or {}
    token = decoded_token or {}
    uid = str(token.get('uid') or profile.get('uid') or '')
    email = str(token.get('email') or profile.get('email') or '').strip().lower()
    if (uid and uid in admin_uids) or (email and email in admin_emails):
        return 'super_admin'
    return sanitize_role(profile.get('role'))


def is_admin_role(role):
    return role in ADMIN_ROLES


def is_moderator_role(role):
    return role in MODERATOR_ROLES


def is_profile_approved(profile):
    if not isinstance(profile, dict):
        return False
    return profile.get('verification_status') == 'approved' and not profile.get('is_blocked', False)


def resolve_access_redirect(decoded_token, profile):
    """Where a user must be sent before seeing a protected page, or None when allowed."""
    if not decoded_token:
        return AUTH_PAGE
    if not is_profile_approved(profile):
        return VERIFICATION_PENDING_PAGE
    return None


def resolve_sign_in_block_message(profile):
    """Message explaining why sign-in is refused, or '' when the account may sign in."""
    if not isinstance(profile, dict):
        return PENDING_MESSAGE
    if profile.get('is_blocked'):
        return BLOCKED_MESSAGE
    status = profile.get('verification_status')
    if status == 'rejected':
        return REJECTED_MESSAGE
    if status != 'approved':
        return PENDING_MESSAGE
    return ''


def build_access_state(decoded_token, profile, role):
    redirect = resolve_access_redirect(decoded_token, profile)
    return {
        'allowed': redirect is None,
        'redirect': redirect,
        'role': role,
        'is_admin': is_admin_role(role),
        'is_moderator': is_moderator_role(role),
    }


class RequestUser:
    """Authenticated caller resolved from a Firebase token and stored profile."""

    def __init__(self, decoded_token, profile, role):
        self.token = decoded_token or {}
        self.uid = self.token.get('uid', '')
        self.email = str(self.token.get('email', '') or '').strip().lower()
        self.profile = profile
        self.role = role

    @property
    def is_admin(self):
        return is_admin_role(self.role)

    @property
    def is_super_admin(self):
        return self.role == 'super_admin'

    @property
    def is_moderator(self):
        return is_moderator_role(self.role)
