"""Business logic handlers for admin APIs."""

MAX_USER_LIST = 1000
DEFAULT_ACTIONS_LIMIT = 50
MAX_ACTIONS_LIMIT = 500


def _load_target_profile(app_ctx, uid):
    profile = app_ctx.get_user_profile(uid)
    if profile is None:
        return None, (app_ctx.jsonify({'error': 'User not found'}), 404)
    return profile, None


def _serialize_admin_profile(app_ctx, profile):
    return app_ctx.profile_service.serialize_profile(profile, include_private=True)


def list_pending_users(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    try:
        profiles = []
        for doc in app_ctx.users_repo.list_by_status(app_ctx.db, 'pending', app_ctx.firestore):
            profile = doc.to_dict() or {}
            profile.setdefault('uid', doc.id)
            profiles.append(profile)
        profiles.sort(key=lambda item: item.get('created_at', 0) or 0)
    except Exception as e:
        app_ctx.logger.error(f"Error listing pending users: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch pending users'}), 500
    return app_ctx.jsonify({'users': [_serialize_admin_profile(app_ctx, profile) for profile in profiles]})


def list_users(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    query = str(request.args.get('q', '') or '').strip().lower()
    try:
        profiles = []
        for doc in app_ctx.users_repo.list_newest(app_ctx.db, app_ctx.firestore, limit=MAX_USER_LIST):
            profile = doc.to_dict() or {}
            profile.setdefault('uid', doc.id)
            if query:
                haystack = f"{profile.get('real_name', '')} {profile.get('email', '')}".lower()
                if query not in haystack:
                    continue
            profiles.append(profile)
        profiles.sort(key=lambda item: item.get('created_at', 0) or 0, reverse=True)
    except Exception as e:
        app_ctx.logger.error(f"Error listing users: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch users'}), 500
    return app_ctx.jsonify({'users': [_serialize_admin_profile(app_ctx, profile) for profile in profiles]})


def set_verification_status(app_ctx, request, uid, status):
    admin, error = app_ctx.require_admin(request)
    if error:
        return error
    try:
        profile, missing = _load_target_profile(app_ctx, uid)
        if missing:
            return missing
        updates = {'verification_status': status}
        if status == 'approved':
            updates['approved_at'] = app_ctx.time.time()
            updates['approved_by'] = admin.uid
        app_ctx.users_repo.update_doc(app_ctx.db, uid, updates)
    except Exception as e:
        app_ctx.logger.error(f"Error setting verification status {status} for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not update verification status'}), 500

    action_type = 'user_approved' if status == 'approved' else 'user_rejected'
    app_ctx.record_admin_action(admin, action_type, uid, {'user_name': app_ctx.profile_service.display_name(profile)})
    return app_ctx.jsonify({'ok': True, 'uid': uid, 'verification_status': status})


def toggle_block(app_ctx, request, uid):
    admin, error = app_ctx.require_admin(request)
    if error:
        return error
    if uid == admin.uid:
        return app_ctx.jsonify({'error': 'You cannot block your own account'}), 400
    try:
        profile, missing = _load_target_profile(app_ctx, uid)
        if missing:
            return missing
        target_role = app_ctx.resolve_user_role({'uid': uid, 'email': profile.get('email', '')}, profile)
        if target_role == 'super_admin' and not admin.is_super_admin:
            return app_ctx.jsonify({'error': 'Only a super admin can block another super admin'}), 403
        is_blocked = not bool(profile.get('is_blocked', False))
        app_ctx.users_repo.update_doc(app_ctx.db, uid, {'is_blocked': is_blocked})
    except Exception as e:
        app_ctx.logger.error(f"Error toggling block for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not update block status'}), 500

    action_type = 'user_blocked' if is_blocked else 'user_unblocked'
    app_ctx.record_admin_action(admin, action_type, uid, {'user_name': app_ctx.profile_service.display_name(profile)})
    return app_ctx.jsonify({'ok': True, 'uid': uid, 'is_blocked': is_blocked})


def change_role(app_ctx, request, uid):
    admin, error = app_ctx.require_admin(request, super_admin=True)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    new_role = str(data.get('role', '') or '').strip().lower()
    if new_role not in app_ctx.access_service.ROLES:
        return app_ctx.jsonify({'error': 'Invalid role'}), 400
    if uid == admin.uid and new_role != 'super_admin':
        return app_ctx.jsonify({'error': 'You cannot demote your own account'}), 400
    try:
        profile, missing = _load_target_profile(app_ctx, uid)
        if missing:
            return missing
        app_ctx.users_repo.update_doc(app_ctx.db, uid, {'role': new_role})
    except Exception as e:
        app_ctx.logger.error(f"Error changing role for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not change role'}), 500

    app_ctx.record_admin_action(admin, 'role_changed', uid, {
        'user_name': app_ctx.profile_service.display_name(profile),
        'new_role': new_role,
    })
    return app_ctx.jsonify({'ok': True, 'uid': uid, 'role': new_role})


def change_plan(app_ctx, request, uid):
    admin, error = app_ctx.require_admin(request)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    new_plan = app_ctx.quota_service.sanitize_plan(data.get('plan'), default='')
    if not new_plan:
        return app_ctx.jsonify({'error': 'Invalid plan'}), 400
    badge = app_ctx.quota_service.PLAN_BADGES[new_plan]
    try:
        profile, missing = _load_target_profile(app_ctx, uid)
        if missing:
            return missing
        app_ctx.users_repo.update_doc(app_ctx.db, uid, {'plan': new_plan, 'badge': badge, 'plan_expires_at': None})
    except Exception as e:
        app_ctx.logger.error(f"Error changing plan for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not change plan'}), 500

    app_ctx.record_admin_action(admin, 'plan_changed', uid, {
        'user_name': app_ctx.profile_service.display_name(profile),
        'new_plan': new_plan,
    })
    return app_ctx.jsonify({'ok': True, 'uid': uid, 'plan': new_plan, 'badge': badge})


def update_custom_quotas(app_ctx, request, uid):
    admin, error = app_ctx.require_admin(request)
    if error:
        return error
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return app_ctx.jsonify({'error': 'Invalid quota payload'}), 400

    updates = {}
    for quota_type in app_ctx.quota_service.QUOTA_TYPES:
        if quota_type not in data:
            continue
        raw_value = data[quota_type]
        if raw_value is None:
            updates[f'custom_daily_{quota_type}'] = None
            continue
        value = app_ctx.quota_service.sanitize_quota_value(raw_value)
        if value is None:
            return app_ctx.jsonify({'error': f'Invalid value for {quota_type}'}), 400
        updates[f'custom_daily_{quota_type}'] = value
    if not updates:
        return app_ctx.jsonify({'error': 'No quota values provided'}), 400

    try:
        profile, missing = _load_target_profile(app_ctx, uid)
        if missing:
            return missing
        app_ctx.users_repo.update_doc(app_ctx.db, uid, updates)
    except Exception as e:
        app_ctx.logger.error(f"Error updating quotas for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not update quotas'}), 500

    app_ctx.record_admin_action(admin, 'quotas_changed', uid, {
        'user_name': app_ctx.profile_service.display_name(profile),
        'quotas': {key.replace('custom_daily_', ''): value for key, value in updates.items()},
    })
    profile.update(updates)
    return app_ctx.jsonify({
        'ok': True,
        'uid': uid,
        'quotas': app_ctx.quota_service.resolve_user_quotas(profile, app_ctx.get_app_settings()),
    })


def list_actions(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    try:
        limit = int(request.args.get('limit', DEFAULT_ACTIONS_LIMIT))
    except (TypeError, ValueError):
        limit = DEFAULT_ACTIONS_LIMIT
    limit = min(max(limit, 1), MAX_ACTIONS_LIMIT)
    try:
        docs = app_ctx.admin_repo.list_recent_actions(app_ctx.db, limit, app_ctx.firestore)
        actions = [app_ctx.audit_service.serialize_action(doc) for doc in docs]
        actions.sort(key=lambda entry: entry.get('timestamp', 0) or 0, reverse=True)
    except Exception as e:
        app_ctx.logger.error(f"Error listing admin actions: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch admin actions'}), 500
    return app_ctx.jsonify({'actions': actions})


def get_settings(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    settings = app_ctx.get_app_settings()
    settings['effective_plan_quotas'] = {
        plan: app_ctx.quota_service.resolve_plan_quotas(plan, settings)
        for plan in app_ctx.quota_service.PLANS
    }
    return app_ctx.jsonify({'settings': settings})


def update_settings(app_ctx, request):
    admin, error = app_ctx.require_admin(request, super_admin=True)
    if error:
        return error
    updates, validation_error = app_ctx.settings_service.sanitize_settings_update(request.get_json(silent=True))
    if validation_error:
        return app_ctx.jsonify({'error': validation_error}), 400
    updates['updated_at'] = app_ctx.time.time()
    updates['updated_by'] = admin.uid
    try:
        app_ctx.settings_repo.set_doc(app_ctx.db, updates)
    except Exception as e:
        app_ctx.logger.error(f"Error updating app settings: {e}")
        return app_ctx.jsonify({'error': 'Could not update settings'}), 500

    app_ctx.record_admin_action(admin, 'settings_updated', '', {
        'fields': sorted(key for key in updates if key not in {'updated_at', 'updated_by'}),
    })
    return app_ctx.jsonify({'ok': True, 'settings': app_ctx.get_app_settings()})


def overview(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    try:
        db = app_ctx.db
        total_users = app_ctx.admin_repo.count_collection(db, 'users')
        users_by_status = {
            status: app_ctx.admin_repo.count_where(db, 'users', 'verification_status', '==', status)
            for status in app_ctx.access_service.VERIFICATION_STATUSES
        }
        users_by_plan = {
            plan: app_ctx.admin_repo.count_where(db, 'users', 'plan', '==', plan)
            for plan in app_ctx.quota_service.PLANS
        }
        blocked_users = app_ctx.admin_repo.count_where(db, 'users', 'is_blocked', '==', True)

        date_key = app_ctx.quota_service.today_key()
        usage_totals = {quota_type: 0 for quota_type in app_ctx.quota_service.QUOTA_TYPES}
        active_users_today = 0
        for doc in app_ctx.usage_repo.list_by_date(db, date_key):
            usage = doc.to_dict() or {}
            active_users_today += 1
            for quota_type in app_ctx.quota_service.QUOTA_TYPES:
                usage_totals[quota_type] += app_ctx.quota_service.usage_count(usage, quota_type)

        pending_reports = app_ctx.admin_repo.count_where(db, 'message_reports', 'status', '==', 'pending')
        pending_payments = app_ctx.admin_repo.count_where(db, 'payments', 'status', '==', 'pending')
    except Exception as e:
        app_ctx.logger.error(f"Error building admin overview: {e}")
        return app_ctx.jsonify({'error': 'Could not build overview'}), 500

    return app_ctx.jsonify({
        'total_users': total_users,
        'users_by_status': users_by_status,
        'users_by_plan': users_by_plan,
        'blocked_users': blocked_users,
        'pending_reports': pending_reports,
        'pending_payments': pending_payments,
        'today': {
            'date': date_key,
            'active_users': active_users_today,
            'usage': usage_totals,
        },
        'runtime': {
            'firebase_ready': bool(app_ctx.db),
            'gemini_ready': bool(app_ctx.client),
            'storage_ready': bool(app_ctx.storage_bucket),
            'stripe_ready': bool(app_ctx.stripe.api_key),
        },
    })


def list_prompts(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    return app_ctx.jsonify({'prompts': app_ctx.prompt_registry.get_prompt_inventory()})


def list_payments(app_ctx, request):
    _admin, error = app_ctx.require_admin(request)
    if error:
        return error
    status = str(request.args.get('status', 'pending') or 'pending').strip().lower()
    if status not in app_ctx.payments_api_service.PAYMENT_STATUSES:
        return app_ctx.jsonify({'error': 'Invalid status'}), 400
    try:
        payments = app_ctx.query_utils.docs_to_dicts(app_ctx.payments_repo.list_by_status(app_ctx.db, status, app_ctx.firestore, 200))
        payments.sort(key=lambda item: item.get('created_at', 0) or 0, reverse=True)
    except Exception as e:
        app_ctx.logger.error(f"Error listing payments ({status}): {e}")
        return app_ctx.jsonify({'error': 'Could not fetch payments'}), 500
    return app_ctx.jsonify({'payments': payments})


def _claim_pending_payment(app_ctx, payment_id, updates):
    """Apply ``updates`` only while the payment is pending; returns (payment, status_before)."""
    payment_ref = app_ctx.payments_repo.doc_ref(app_ctx.db, payment_id)

    @app_ctx.firestore.transactional
    def _claim(txn):
        snapshot = payment_ref.get(transaction=txn)
        if not snapshot.exists:
            return None, None
        payment = snapshot.to_dict() or {}
        status_before = payment.get('status') or 'processed'
        if status_before == 'pending':
            txn.set(payment_ref, updates, merge=True)
        return payment, status_before

    return _claim(app_ctx.db.transaction())


def review_payment(app_ctx, request, payment_id, status):
    admin, error = app_ctx.require_admin(request)
    if error:
        return error
    try:
        now_ts = app_ctx.time.time()
        updates = {'status': status, 'confirmed_by': admin.uid, 'confirmed_at': now_ts}
        payment, status_before = _claim_pending_payment(app_ctx, payment_id, updates)
        if payment is None:
            return app_ctx.jsonify({'error': 'Payment not found'}), 404
        if status_before != 'pending':
            return app_ctx.jsonify({'error': f"Payment is already {status_before}"}), 409
        if status == 'confirmed':
            try:
                expires_at = app_ctx.payments_api_service.activate_plan(
                    app_ctx, payment.get('user_id', ''), payment.get('plan', ''), now_ts,
                )
            except Exception:
                app_ctx.payments_repo.set_doc(app_ctx.db, payment_id, {'status': 'pending', 'confirmed_by': '', 'confirmed_at': None})
                raise
            app_ctx.payments_repo.set_doc(app_ctx.db, payment_id, {
                'paid_at': payment.get('paid_at') or now_ts,
                'expires_at': expires_at,
            })
    except Exception as e:
        app_ctx.logger.error(f"Error reviewing payment {payment_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not update payment'}), 500

    action_type = 'payment_confirmed' if status == 'confirmed' else 'payment_rejected'
    target_uid = payment.get('user_id', '')
    target_profile = app_ctx.get_user_profile(target_uid) or {}
    app_ctx.record_admin_action(admin, action_type, target_uid, {
        'user_name': app_ctx.profile_service.display_name(target_profile),
        'new_plan': payment.get('plan', ''),
        'payment_id': payment_id,
    })
    return app_ctx.jsonify({'ok': True, 'payment_id': payment_id, 'status': status})
