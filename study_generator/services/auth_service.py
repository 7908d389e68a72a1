"""Authentication utility helpers."""


def extract_bearer_token(request):
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return ''
    return auth_header.split('Bearer ', 1)[1].strip()


def verify_firebase_token(request, auth_module, logger):
    """Return decoded Firebase token dict, or None when invalid/missing."""
    token = extract_bearer_token(request)
    if not token:
        return None
    try:
        return auth_module.verify_id_token(token)
    except Exception as exc:
        if logger is not None:
            logger.info(f"Token verification failed: {exc}")
        return None


def verify_session_cookie(request, auth_module, cookie_name, logger):
    """Return decoded claims for the browser session cookie, or None."""
    session_cookie = request.cookies.get(cookie_name, '')
    if not session_cookie:
        return None
    try:
        return auth_module.verify_session_cookie(session_cookie, check_revoked=True)
    except Exception as exc:
        if logger is not None:
            logger.info(f"Session cookie verification failed: {exc}")
        return None
