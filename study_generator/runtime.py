import os
import sys
import time
import json
import re
import threading
import logging
import uuid

import stripe
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from flask import Flask, request, jsonify, render_template, send_file, redirect, g
from google import genai
from google.genai import types
from dotenv import load_dotenv
from werkzeug.exceptions import RequestEntityTooLarge
import firebase_admin
from firebase_admin import credentials, auth, firestore, storage

from study_generator.logging_config import log_event as _log_event
from study_generator.repositories import (
    admin_repo,
    query_utils,
    community_repo,
    payments_repo,
    settings_repo,
    usage_repo,
    users_repo,
)
from study_generator.services import (
    access_service,
    audit_service,
    auth_service,
    extraction_service,
    generation_service,
    pdf_service,
    profile_service,
    prompt_registry,
    quota_service,
    rate_limit_service,
    settings_service,
    storage_service,
)
from study_generator.services import (
    admin_api_service,
    auth_api_service,
    community_api_service,
    export_api_service,
    generation_api_service,
    pages_service,
    payments_api_service,
)

MODULE_DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv()
app = Flask(
    __name__,
    template_folder=os.path.join(MODULE_DIR, 'templates'),
)
app.secret_key = os.getenv('FLASK_SECRET_KEY', os.urandom(32).hex())
logger = logging.getLogger('study_generator')


def log_event(level, event, **fields):
    _log_event(logger, level, event, **fields)


def safe_int_env(name, default=0, minimum=1, maximum=100000):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except Exception:
        value = int(default)
    return min(max(value, minimum), maximum)


def safe_float_env(name, default=0.0):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, 0.0), 1.0)


def parse_env_set(name, lowercase=False):
    values = set()
    for part in (os.getenv(name, '') or '').split(','):
        part = part.strip()
        if part:
            values.add(part.lower() if lowercase else part)
    return values


MAX_EXTRACT_UPLOAD_BYTES = safe_int_env('MAX_EXTRACT_UPLOAD_BYTES', 20 * 1024 * 1024, minimum=1024 * 1024, maximum=100 * 1024 * 1024)
MAX_CONTENT_LENGTH = MAX_EXTRACT_UPLOAD_BYTES + (5 * 1024 * 1024)
app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

MODEL_STUDY = (os.getenv('GEMINI_MODEL_STUDY', 'gemini-2.5-flash') or 'gemini-2.5-flash').strip()
MODEL_OCR = (os.getenv('GEMINI_MODEL_OCR', 'gemini-2.5-flash-lite') or 'gemini-2.5-flash-lite').strip()

GEMINI_API_KEY = (os.getenv('GEMINI_API_KEY', '') or '').strip()
if GEMINI_API_KEY:
    try:
        client = genai.Client(api_key=GEMINI_API_KEY)
    except Exception as e:
        client = None
        logger.info(f"⚠️ Gemini client disabled: {e}")
else:
    client = None
    logger.info("⚠️ GEMINI_API_KEY not set; study material generation is disabled.")

# --- Firebase Setup ---
db = None
storage_bucket = None
firebase_init_error = ''
FIREBASE_STORAGE_BUCKET = (os.getenv('FIREBASE_STORAGE_BUCKET', '') or '').strip()
try:
    if os.path.exists('firebase-credentials.json'):
        cred = credentials.Certificate('firebase-credentials.json')
    else:
        firebase_creds_raw = (os.getenv('FIREBASE_CREDENTIALS', '') or '').strip()
        if not firebase_creds_raw:
            raise ValueError("FIREBASE_CREDENTIALS is not set and firebase-credentials.json was not found.")
        cred = credentials.Certificate(json.loads(firebase_creds_raw))
    if not firebase_admin._apps:
        options = {'storageBucket': FIREBASE_STORAGE_BUCKET} if FIREBASE_STORAGE_BUCKET else None
        firebase_admin.initialize_app(cred, options)
    db = firestore.client()
    if FIREBASE_STORAGE_BUCKET:
        storage_bucket = storage.bucket()
except Exception as e:
    firebase_init_error = str(e)
    logger.info(f"⚠️ Firebase initialization skipped: {firebase_init_error}")

# --- Stripe Setup ---
stripe.api_key = os.getenv('STRIPE_SECRET_KEY')
STRIPE_PUBLISHABLE_KEY = os.getenv('STRIPE_PUBLISHABLE_KEY', '')
STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET', '')
PLAN_CURRENCY = (os.getenv('PLAN_CURRENCY', 'pkr') or 'pkr').strip().lower()
PLAN_DURATION_DAYS = safe_int_env('PLAN_DURATION_DAYS', 30, minimum=1, maximum=366)
ADMIN_EMAILS = parse_env_set('ADMIN_EMAILS', lowercase=True)
ADMIN_UIDS = parse_env_set('ADMIN_UIDS')

SESSION_COOKIE_NAME = 'sg_session'
SESSION_DURATION_SECONDS = safe_int_env('SESSION_DURATION_SECONDS', 5 * 24 * 60 * 60, minimum=300, maximum=14 * 24 * 60 * 60)

GENERATE_RATE_LIMIT_WINDOW_SECONDS = safe_int_env('GENERATE_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400)
GENERATE_RATE_LIMIT_MAX_REQUESTS = safe_int_env('GENERATE_RATE_LIMIT_MAX_REQUESTS', 20, minimum=1, maximum=1000)
EXTRACT_RATE_LIMIT_WINDOW_SECONDS = safe_int_env('EXTRACT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400)
EXTRACT_RATE_LIMIT_MAX_REQUESTS = safe_int_env('EXTRACT_RATE_LIMIT_MAX_REQUESTS', 30, minimum=1, maximum=1000)
EXPORT_RATE_LIMIT_WINDOW_SECONDS = safe_int_env('EXPORT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400)
EXPORT_RATE_LIMIT_MAX_REQUESTS = safe_int_env('EXPORT_RATE_LIMIT_MAX_REQUESTS', 30, minimum=1, maximum=1000)
CHECKOUT_RATE_LIMIT_WINDOW_SECONDS = safe_int_env('CHECKOUT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400)
CHECKOUT_RATE_LIMIT_MAX_REQUESTS = safe_int_env('CHECKOUT_RATE_LIMIT_MAX_REQUESTS', 6, minimum=1, maximum=100)
MESSAGE_RATE_LIMIT_WINDOW_SECONDS = safe_int_env('MESSAGE_RATE_LIMIT_WINDOW_SECONDS', 60, minimum=10, maximum=3600)
MESSAGE_RATE_LIMIT_MAX_REQUESTS = safe_int_env('MESSAGE_RATE_LIMIT_MAX_REQUESTS', 30, minimum=1, maximum=1000)
RATE_LIMIT_EVENTS = {}
RATE_LIMIT_LOCK = threading.Lock()
RATE_LIMIT_COUNTER_COLLECTION = 'rate_limit_counters'
RATE_LIMIT_FIRESTORE_ENABLED = str(os.getenv('RATE_LIMIT_FIRESTORE_ENABLED', '1')).strip().lower() in {'1', 'true', 'yes', 'on'}

SENTRY_BACKEND_DSN = os.getenv('SENTRY_DSN_BACKEND', '').strip()
SENTRY_ENVIRONMENT = (os.getenv('SENTRY_ENVIRONMENT', os.getenv('FLASK_ENV', 'production')) or 'production').strip()
SENTRY_RELEASE = (os.getenv('SENTRY_RELEASE', 'study-material-generator') or 'study-material-generator').strip()
SENTRY_TRACES_SAMPLE_RATE = safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0)

if SENTRY_BACKEND_DSN:
    sentry_sdk.init(
        dsn=SENTRY_BACKEND_DSN,
        integrations=[FlaskIntegration()],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        environment=SENTRY_ENVIRONMENT,
        release=SENTRY_RELEASE,
    )


def parse_cors_allowed_origins():
    raw = (os.getenv('CORS_ALLOWED_ORIGINS', '') or '').strip()
    if raw:
        return {part.strip().lower() for part in raw.split(',') if part.strip()}
    return {
        'http://127.0.0.1:5000',
        'http://localhost:5000',
        'http://127.0.0.1:8080',
        'http://localhost:8080',
    }


CORS_ALLOWED_ORIGINS = parse_cors_allowed_origins()


def apply_cors_headers(response):
    origin = str(request.headers.get('Origin', '') or '').strip()
    if not origin:
        return response
    if not request.path.startswith('/api/'):
        return response
    if origin.lower() not in CORS_ALLOWED_ORIGINS:
        return response
    response.headers['Access-Control-Allow-Origin'] = origin
    response.headers['Vary'] = 'Origin'
    response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, PATCH, DELETE, OPTIONS'
    response.headers['Access-Control-Allow-Credentials'] = 'true'
    return response


@app.before_request
def handle_api_options_preflight():
    if request.method == 'OPTIONS' and request.path.startswith('/api/'):
        response = app.make_default_options_response()
        response.status_code = 204
        return apply_cors_headers(response)


@app.before_request
def attach_request_id():
    g.request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
    if SENTRY_BACKEND_DSN:
        sentry_sdk.set_tag('request.id', g.request_id)
        sentry_sdk.set_tag('route.endpoint', request.endpoint or '')


@app.after_request
def finalize_response(response):
    request_id = str(getattr(g, 'request_id', '') or '').strip()
    if request_id:
        response.headers['X-Request-ID'] = request_id
    return apply_cors_headers(response)


@app.errorhandler(RequestEntityTooLarge)
def handle_request_entity_too_large(_error):
    max_mb = MAX_EXTRACT_UPLOAD_BYTES // (1024 * 1024)
    return jsonify({'error': f'Upload too large. Maximum file size is {max_mb}MB.'}), 413


# =============================================
# HELPER FUNCTIONS
# =============================================

def verify_firebase_token(request):
    return auth_service.verify_firebase_token(request, auth_module=auth, logger=logger)


def verify_session_cookie(request):
    return auth_service.verify_session_cookie(request, auth_module=auth, cookie_name=SESSION_COOKIE_NAME, logger=logger)


def is_bootstrap_admin(decoded_token):
    if not decoded_token:
        return False
    uid = decoded_token.get('uid', '')
    email = str(decoded_token.get('email', '') or '').lower()
    return uid in ADMIN_UIDS or email in ADMIN_EMAILS


def get_user_profile(uid):
    if db is None or not uid:
        return None
    snapshot = users_repo.get_doc(db, uid)
    if not snapshot.exists:
        return None
    profile = snapshot.to_dict() or {}
    profile.setdefault('uid', uid)
    return profile


def get_app_settings():
    return settings_service.load_app_settings(db, logger=logger)


def resolve_user_role(decoded_token, profile):
    return access_service.resolve_effective_role(
        profile,
        decoded_token,
        admin_emails=ADMIN_EMAILS,
        admin_uids=ADMIN_UIDS,
    )


def resolve_request_user(decoded_token):
    profile = get_user_profile(decoded_token.get('uid', ''))
    return access_service.RequestUser(decoded_token, profile, resolve_user_role(decoded_token, profile))


def authenticate_request(request, require_approved=True):
    """Return (RequestUser, None) or (None, error_response) for an API call."""
    decoded_token = verify_firebase_token(request)
    if not decoded_token:
        return None, (jsonify({'error': 'Unauthorized', 'redirect': access_service.AUTH_PAGE}), 401)
    try:
        user = resolve_request_user(decoded_token)
    except Exception as e:
        logger.error(f"Could not load profile for {decoded_token.get('uid', '')}: {e}")
        return None, (jsonify({'error': 'Could not load your profile. Please try again.'}), 500)
    if require_approved and not is_bootstrap_admin(decoded_token):
        block_message = access_service.resolve_sign_in_block_message(user.profile)
        if block_message:
            return None, (jsonify({
                'error': block_message,
                'redirect': access_service.VERIFICATION_PENDING_PAGE,
            }), 403)
    return user, None


def require_admin(request, super_admin=False):
    user, error = authenticate_request(request, require_approved=False)
    if error:
        return None, error
    if not user.is_admin or (super_admin and not user.is_super_admin):
        return None, (jsonify({'error': 'Forbidden'}), 403)
    return user, None


def check_app_enabled(user):
    """Maintenance response for non-admin callers while the app is switched off, else None."""
    if user is not None and user.is_admin:
        return None
    settings = get_app_settings()
    if settings.get('app_enabled', True):
        return None
    return jsonify({
        'error': settings_service.resolve_maintenance_message(settings),
        'maintenance': True,
    }), 503


def record_admin_action(user, action_type, target_user_id='', details=None):
    try:
        entry = audit_service.build_admin_action(user.token, action_type, target_user_id, details, time_module=time)
        admin_repo.add_action(db, entry)
        log_event(logging.INFO, 'admin_action', action_type=action_type, admin_id=user.uid, target_user_id=target_user_id)
        return True
    except Exception as e:
        logger.error(f"❌ Failed to record admin action {action_type}: {e}")
        return False


def check_rate_limit(key, limit, window_seconds):
    return rate_limit_service.check_rate_limit(
        key,
        limit,
        window_seconds,
        firestore_enabled=RATE_LIMIT_FIRESTORE_ENABLED,
        db=db,
        firestore_module=firestore,
        counter_collection=RATE_LIMIT_COUNTER_COLLECTION,
        in_memory_events=RATE_LIMIT_EVENTS,
        in_memory_lock=RATE_LIMIT_LOCK,
        time_module=time,
    )


def log_rate_limit_hit(limit_name, retry_after=0):
    return rate_limit_service.log_rate_limit_hit(limit_name, retry_after, db=db, logger=logger, time_module=time)


def build_rate_limited_response(message, retry_after):
    response = jsonify({
        'error': message,
        'retry_after_seconds': int(max(1, retry_after)),
    })
    response.status_code = 429
    response.headers['Retry-After'] = str(int(max(1, retry_after)))
    return response


def normalize_rate_limit_key_part(value, fallback='anon', max_len=120):
    raw = str(value or '').strip().lower()
    if not raw:
        return fallback
    safe = re.sub(r'[^a-z0-9_.:@-]+', '_', raw)
    return safe[:max_len] if safe else fallback


def enforce_rate_limit(limit_name, uid, limit, window_seconds, message):
    """Rate-limited response when the caller is over budget, else None."""
    allowed, retry_after = check_rate_limit(
        key=f"{limit_name}:{normalize_rate_limit_key_part(uid, fallback='anon_uid')}",
        limit=limit,
        window_seconds=window_seconds,
    )
    if allowed:
        return None
    log_rate_limit_hit(limit_name, retry_after)
    return build_rate_limited_response(message, retry_after)


def get_user_quota_state(user, date_key=None):
    """(quotas, usage, date_key) for the caller's current UTC day."""
    safe_date = date_key or quota_service.today_key()
    quotas = quota_service.resolve_user_quotas(user.profile, get_app_settings())
    usage = quota_service.get_or_create_daily_usage(db, user.uid, safe_date, time_module=time)
    return quotas, usage, safe_date


def reserve_usages(uid, date_key, requests):
    return quota_service.reserve_usages(
        db,
        uid,
        date_key,
        requests,
        firestore_module=firestore,
        time_module=time,
    )


def reserve_usage(uid, date_key, quota_type, amount, limit):
    return quota_service.reserve_usage(
        db,
        uid,
        date_key,
        quota_type,
        amount,
        limit,
        firestore_module=firestore,
        time_module=time,
    )


def _app_ctx():
    return sys.modules[__name__]


# =============================================
# ROUTE IMPLEMENTATIONS
# =============================================

def generate_impl():
    return generation_api_service.generate(_app_ctx(), request)


def get_quota_impl():
    return generation_api_service.get_quota(_app_ctx(), request)


def extract_text_impl():
    return generation_api_service.extract_text(_app_ctx(), request)


def export_pdf_impl():
    return export_api_service.export_pdf(_app_ctx(), request)


def session_login_impl():
    return auth_api_service.create_session(_app_ctx(), request)


def session_logout_impl():
    return auth_api_service.clear_session(_app_ctx(), request)


def register_impl():
    return auth_api_service.register(_app_ctx(), request)


def get_auth_user_impl():
    return auth_api_service.get_auth_user(_app_ctx(), request)


def auth_check_impl():
    return auth_api_service.check_sign_in(_app_ctx(), request)


def verification_status_impl():
    return auth_api_service.get_verification_status(_app_ctx(), request)


def update_profile_impl():
    return auth_api_service.update_profile(_app_ctx(), request)


def list_communities_impl():
    return community_api_service.list_communities(_app_ctx(), request)


def create_community_impl():
    return community_api_service.create_community(_app_ctx(), request)


def get_community_impl(community_id):
    return community_api_service.get_community(_app_ctx(), request, community_id)


def join_community_impl(community_id):
    return community_api_service.join_community(_app_ctx(), request, community_id)


def leave_community_impl(community_id):
    return community_api_service.leave_community(_app_ctx(), request, community_id)


def list_messages_impl(community_id):
    return community_api_service.list_messages(_app_ctx(), request, community_id)


def post_message_impl(community_id):
    return community_api_service.post_message(_app_ctx(), request, community_id)


def delete_message_impl(message_id):
    return community_api_service.delete_message(_app_ctx(), request, message_id)


def report_message_impl(message_id):
    return community_api_service.report_message(_app_ctx(), request, message_id)


def list_reports_impl(community_id):
    return community_api_service.list_reports(_app_ctx(), request, community_id)


def resolve_report_impl(report_id):
    return community_api_service.resolve_report(_app_ctx(), request, report_id)


def ban_member_impl(community_id):
    return community_api_service.ban_member(_app_ctx(), request, community_id)


def admin_pending_impl():
    return admin_api_service.list_pending_users(_app_ctx(), request)


def admin_users_impl():
    return admin_api_service.list_users(_app_ctx(), request)


def admin_approve_impl(uid):
    return admin_api_service.set_verification_status(_app_ctx(), request, uid, 'approved')


def admin_reject_impl(uid):
    return admin_api_service.set_verification_status(_app_ctx(), request, uid, 'rejected')


def admin_block_impl(uid):
    return admin_api_service.toggle_block(_app_ctx(), request, uid)


def admin_role_impl(uid):
    return admin_api_service.change_role(_app_ctx(), request, uid)


def admin_plan_impl(uid):
    return admin_api_service.change_plan(_app_ctx(), request, uid)


def admin_quotas_impl(uid):
    return admin_api_service.update_custom_quotas(_app_ctx(), request, uid)


def admin_actions_impl():
    return admin_api_service.list_actions(_app_ctx(), request)


def admin_get_settings_impl():
    return admin_api_service.get_settings(_app_ctx(), request)


def admin_update_settings_impl():
    return admin_api_service.update_settings(_app_ctx(), request)


def admin_overview_impl():
    return admin_api_service.overview(_app_ctx(), request)


def admin_prompts_impl():
    return admin_api_service.list_prompts(_app_ctx(), request)


def admin_payments_impl():
    return admin_api_service.list_payments(_app_ctx(), request)


def admin_confirm_payment_impl(payment_id):
    return admin_api_service.review_payment(_app_ctx(), request, payment_id, 'confirmed')


def admin_reject_payment_impl(payment_id):
    return admin_api_service.review_payment(_app_ctx(), request, payment_id, 'rejected')


def get_config_impl():
    return payments_api_service.get_config(_app_ctx())


def create_checkout_session_impl():
    return payments_api_service.create_checkout_session(_app_ctx(), request)


def stripe_webhook_impl():
    return payments_api_service.stripe_webhook(_app_ctx(), request)


def manual_payment_impl():
    return payments_api_service.submit_manual_payment(_app_ctx(), request)


def payment_history_impl():
    return payments_api_service.get_payment_history(_app_ctx(), request)


def render_protected_page_impl(template_name, **context):
    return pages_service.render_protected_page(_app_ctx(), request, template_name, **context)


def render_public_page_impl(template_name):
    return pages_service.render_public_page(_app_ctx(), request, template_name)


# =============================================
# HEALTH CHECK
# =============================================
@app.route('/healthz')
def healthz():
    return jsonify({'status': 'ok'}), 200


from study_generator.blueprints import (  # noqa: E402
    admin_bp,
    auth_bp,
    community_bp,
    export_bp,
    generate_bp,
    pages_bp,
    payments_bp,
)

for _blueprint in (auth_bp, generate_bp, export_bp, community_bp, admin_bp, payments_bp, pages_bp):
    app.register_blueprint(_blueprint)
