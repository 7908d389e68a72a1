"""Business logic handlers for session, registration and profile APIs."""

from datetime import timedelta


def _session_cookie_kwargs(app_ctx, request):
    return {
        'httponly': True,
        'secure': bool(request.is_secure or app_ctx.os.getenv('RENDER')),
        'samesite': 'Lax',
        'path': '/',
    }


def create_session(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401

    id_token = app_ctx.auth_service.extract_bearer_token(request)
    if not id_token:
        return app_ctx.jsonify({'error': 'Missing ID token'}), 400

    try:
        session_cookie = app_ctx.auth.create_session_cookie(
            id_token,
            expires_in=timedelta(seconds=app_ctx.SESSION_DURATION_SECONDS),
        )
        user = app_ctx.resolve_request_user(decoded_token)
        response = app_ctx.jsonify({
            'ok': True,
            'access': app_ctx.access_service.build_access_state(decoded_token, user.profile, user.role),
        })
        response.set_cookie(
            app_ctx.SESSION_COOKIE_NAME,
            session_cookie,
            max_age=app_ctx.SESSION_DURATION_SECONDS,
            **_session_cookie_kwargs(app_ctx, request),
        )
        return response
    except Exception as e:
        app_ctx.logger.error(f"Error creating session cookie: {e}")
        return app_ctx.jsonify({'error': 'Could not create session'}), 500


def clear_session(app_ctx, request):
    response = app_ctx.jsonify({'ok': True})
    response.set_cookie(
        app_ctx.SESSION_COOKIE_NAME,
        '',
        expires=0,
        max_age=0,
        **_session_cookie_kwargs(app_ctx, request),
    )
    return response


def register(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    if app_ctx.db is None:
        return app_ctx.jsonify({'error': 'Registration is temporarily unavailable'}), 503

    uid = decoded_token['uid']
    form = request.form if request.form else (request.get_json(silent=True) or {})
    fields, validation_error = app_ctx.profile_service.sanitize_registration_form(form)
    if validation_error:
        return app_ctx.jsonify({'error': validation_error}), 400

    try:
        if app_ctx.users_repo.get_doc(app_ctx.db, uid).exists:
            return app_ctx.jsonify({'error': 'A profile already exists for this account'}), 409
    except Exception as e:
        app_ctx.logger.error(f"Error checking profile for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not create profile'}), 500

    id_card = request.files.get('medical_id')
    if id_card is not None and id_card.filename:
        data = id_card.read()
        upload_error = app_ctx.storage_service.validate_id_card_upload(id_card, data)
        if upload_error:
            return app_ctx.jsonify({'error': upload_error}), 400
        if app_ctx.storage_bucket is None:
            return app_ctx.jsonify({'error': 'File uploads are not configured'}), 503
        try:
            fields['medical_id_card_url'] = app_ctx.storage_service.upload_public_file(
                app_ctx.storage_bucket,
                app_ctx.storage_service.build_id_card_path(uid, id_card.filename),
                data,
                id_card.mimetype or 'application/octet-stream',
            )
        except Exception as e:
            app_ctx.logger.error(f"Medical ID upload failed for {uid}: {e}")
            return app_ctx.jsonify({'error': 'Could not upload your medical ID card. Please try again.'}), 500

    profile = app_ctx.profile_service.build_new_profile(
        uid,
        decoded_token.get('email', ''),
        fields,
        now_ts=app_ctx.time.time(),
    )
    try:
        app_ctx.users_repo.set_doc(app_ctx.db, uid, profile)
    except Exception as e:
        app_ctx.logger.error(f"Error creating profile for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not create profile'}), 500

    app_ctx.logger.info(f"🆕 Registered profile {uid} (pending verification)")
    return app_ctx.jsonify({
        'ok': True,
        'profile': app_ctx.profile_service.serialize_profile(profile),
        'redirect': app_ctx.access_service.VERIFICATION_PENDING_PAGE,
    }), 201


def get_auth_user(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401

    uid = decoded_token['uid']
    try:
        profile = app_ctx.get_user_profile(uid)
        if profile is None:
            # First sign-in through an OAuth provider has no registration form.
            profile = app_ctx.profile_service.build_new_profile(
                uid,
                decoded_token.get('email', ''),
                {'real_name': str(decoded_token.get('name', '') or '').strip()[:120]},
                now_ts=app_ctx.time.time(),
            )
            app_ctx.users_repo.set_doc(app_ctx.db, uid, profile)
            app_ctx.logger.info(f"🆕 Created pending profile for OAuth user {uid}")
    except Exception as e:
        app_ctx.logger.error(f"Error loading profile for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not load profile'}), 500

    role = app_ctx.resolve_user_role(decoded_token, profile)
    serialized = app_ctx.profile_service.serialize_profile(profile)
    serialized['role'] = role
    return app_ctx.jsonify({
        'profile': serialized,
        'access': app_ctx.access_service.build_access_state(decoded_token, profile, role),
    })


def check_sign_in(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    try:
        user = app_ctx.resolve_request_user(decoded_token)
    except Exception as e:
        app_ctx.logger.error(f"Error checking sign-in for {decoded_token.get('uid', '')}: {e}")
        return app_ctx.jsonify({'error': 'Could not verify your account'}), 500

    if app_ctx.is_bootstrap_admin(decoded_token):
        return app_ctx.jsonify({'ok': True, 'redirect': '/'})
    block_message = app_ctx.access_service.resolve_sign_in_block_message(user.profile)
    if block_message:
        return app_ctx.jsonify({
            'ok': False,
            'error': block_message,
            'redirect': app_ctx.access_service.VERIFICATION_PENDING_PAGE,
        }), 403
    return app_ctx.jsonify({'ok': True, 'redirect': '/'})


def get_verification_status(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized', 'redirect': app_ctx.access_service.AUTH_PAGE}), 401
    try:
        profile = app_ctx.get_user_profile(decoded_token['uid'])
    except Exception as e:
        app_ctx.logger.error(f"Error fetching verification status: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch verification status'}), 500

    profile = profile or {}
    return app_ctx.jsonify({
        'verification_status': profile.get('verification_status', 'pending'),
        'is_blocked': bool(profile.get('is_blocked', False)),
        'message': app_ctx.access_service.resolve_sign_in_block_message(profile) if profile else app_ctx.access_service.PENDING_MESSAGE,
        'redirect': app_ctx.access_service.resolve_access_redirect(decoded_token, profile),
    })


def update_profile(app_ctx, request):
    user, error = app_ctx.authenticate_request(request, require_approved=False)
    if error:
        return error
    if user.profile is None:
        return app_ctx.jsonify({'error': 'Profile not found'}), 404

    updates, validation_error = app_ctx.profile_service.sanitize_profile_update(request.get_json(silent=True))
    if validation_error:
        return app_ctx.jsonify({'error': validation_error}), 400
    updates['updated_at'] = app_ctx.time.time()
    try:
        app_ctx.users_repo.update_doc(app_ctx.db, user.uid, updates)
    except Exception as e:
        app_ctx.logger.error(f"Error updating profile for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not update profile'}), 500

    profile = dict(user.profile)
    profile.update(updates)
    return app_ctx.jsonify({'ok': True, 'profile': app_ctx.profile_service.serialize_profile(profile)})
