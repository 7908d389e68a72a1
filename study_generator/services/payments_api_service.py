"""Business logic handlers for plan subscription payments."""

PAID_PLANS = ('basic', 'premium')
PAYMENT_STATUSES = ('pending', 'confirmed', 'rejected')
PLAN_DESCRIPTIONS = {
    'basic': 'Higher daily limits for regular study sessions',
    'premium': 'The largest daily limits and unlimited-style PDF exports',
}
MAX_TRANSACTION_REF_LEN = 64
SECONDS_PER_DAY = 24 * 60 * 60


def get_config(app_ctx):
    settings = app_ctx.get_app_settings()
    return app_ctx.jsonify({
        'stripe_publishable_key': app_ctx.STRIPE_PUBLISHABLE_KEY,
        'currency': app_ctx.PLAN_CURRENCY,
        'plan_duration_days': app_ctx.PLAN_DURATION_DAYS,
        'plans': {
            plan: {
                'name': plan.title(),
                'badge': app_ctx.quota_service.PLAN_BADGES[plan],
                'price_cents': int(settings['plan_prices'].get(plan, 0)),
                'quotas': app_ctx.quota_service.resolve_plan_quotas(plan, settings),
            }
            for plan in app_ctx.quota_service.PLANS
        },
    })


def activate_plan(app_ctx, uid, plan, now_ts):
    """Grant ``plan`` for one billing period; renewals extend an unexpired period.

    Returns the new expiry timestamp.
    """
    safe_plan = app_ctx.quota_service.sanitize_plan(plan, default='')
    if not uid or safe_plan not in PAID_PLANS:
        raise ValueError(f"Cannot activate plan '{plan}' for '{uid}'")
    period_start = now_ts
    snapshot = app_ctx.users_repo.get_doc(app_ctx.db, uid)
    profile = (snapshot.to_dict() or {}) if snapshot.exists else {}
    if profile.get('plan') == safe_plan and profile.get('plan_expires_at'):
        period_start = max(now_ts, float(profile['plan_expires_at']))
    expires_at = period_start + app_ctx.PLAN_DURATION_DAYS * SECONDS_PER_DAY
    app_ctx.users_repo.update_doc(app_ctx.db, uid, {
        'plan': safe_plan,
        'badge': app_ctx.quota_service.PLAN_BADGES[safe_plan],
        'plan_expires_at': expires_at,
    })
    return expires_at


def create_checkout_session(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    limited = app_ctx.enforce_rate_limit(
        'checkout',
        user.uid,
        app_ctx.CHECKOUT_RATE_LIMIT_MAX_REQUESTS,
        app_ctx.CHECKOUT_RATE_LIMIT_WINDOW_SECONDS,
        'Too many checkout attempts. Please wait before starting another checkout.',
    )
    if limited:
        return limited

    data = request.get_json(silent=True) or {}
    plan = str(data.get('plan', '') or '').strip().lower()
    if plan not in PAID_PLANS:
        return app_ctx.jsonify({'error': 'Invalid plan selected'}), 400
    price_cents = int(app_ctx.get_app_settings()['plan_prices'].get(plan, 0))
    if price_cents <= 0:
        return app_ctx.jsonify({'error': 'This plan is not available for purchase'}), 400

    try:
        checkout_session = app_ctx.stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=[{
                'price_data': {
                    'currency': app_ctx.PLAN_CURRENCY,
                    'product_data': {
                        'name': f"{plan.title()} plan ({app_ctx.PLAN_DURATION_DAYS} days)",
                        'description': PLAN_DESCRIPTIONS[plan],
                    },
                    'unit_amount': price_cents,
                },
                'quantity': 1,
            }],
            mode='payment',
            success_url=request.host_url.rstrip('/') + '/?payment=success&session_id={CHECKOUT_SESSION_ID}',
            cancel_url=request.host_url.rstrip('/') + '/?payment=cancelled',
            customer_email=user.email or None,
            metadata={
                'uid': user.uid,
                'plan': plan,
            },
        )
        return app_ctx.jsonify({'checkout_url': checkout_session.url})
    except Exception as e:
        app_ctx.logger.error(f"Stripe checkout error: {e}")
        return app_ctx.jsonify({'error': 'Could not create checkout session. Please try again.'}), 500


def process_checkout_session(app_ctx, stripe_session):
    """Confirm a paid checkout session once; return (ok, status)."""
    metadata = stripe_session.get('metadata', {}) or {}
    uid = metadata.get('uid', '')
    plan = metadata.get('plan', '')
    stripe_session_id = stripe_session.get('id', '')
    payment_status = (stripe_session.get('payment_status') or '').lower()
    session_status = (stripe_session.get('status') or '').lower()

    if not uid or not plan:
        return False, 'Missing checkout metadata.'
    if plan not in PAID_PLANS:
        return False, 'Unknown plan.'
    if payment_status != 'paid' and session_status != 'complete':
        return False, 'Checkout session is not paid yet.'
    if app_ctx.payments_repo.query_by_session_id(app_ctx.db, stripe_session_id):
        return True, 'already_processed'

    now_ts = app_ctx.time.time()
    expires_at = activate_plan(app_ctx, uid, plan, now_ts)
    app_ctx.payments_repo.add_doc(app_ctx.db, {
        'user_id': uid,
        'plan': plan,
        'amount_cents': int(stripe_session.get('amount_total', 0) or 0),
        'currency': stripe_session.get('currency', app_ctx.PLAN_CURRENCY),
        'payment_method': 'stripe',
        'transaction_ref': stripe_session.get('payment_intent', '') or '',
        'stripe_session_id': stripe_session_id,
        'status': 'confirmed',
        'created_at': now_ts,
        'paid_at': now_ts,
        'expires_at': expires_at,
        'confirmed_by': 'stripe',
        'confirmed_at': now_ts,
    })
    return True, 'granted'


def stripe_webhook(app_ctx, request):
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature', '')

    if app_ctx.STRIPE_WEBHOOK_SECRET:
        try:
            event = app_ctx.stripe.Webhook.construct_event(
                payload, sig_header, app_ctx.STRIPE_WEBHOOK_SECRET
            )
        except ValueError:
            app_ctx.logger.warning("Stripe webhook: Invalid payload")
            return 'Invalid payload', 400
        except app_ctx.stripe.error.SignatureVerificationError as e:
            app_ctx.logger.warning(f"Stripe webhook signature verification failed: {e}")
            return 'Invalid signature', 400
        except Exception as e:
            app_ctx.logger.error(f"Stripe webhook unexpected error: {e}")
            return 'Webhook processing error', 500
    else:
        app_ctx.logger.warning("⚠️ Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        return app_ctx.jsonify({'error': 'Webhook not configured'}), 500

    if event.get('type') == 'checkout.session.completed':
        session = event['data']['object']
        try:
            ok, status = process_checkout_session(app_ctx, session)
        except Exception as e:
            app_ctx.logger.error(f"Stripe webhook could not process session {session.get('id', '')}: {e}")
            return 'Webhook processing error', 500
        if ok and status == 'granted':
            metadata = session.get('metadata', {}) or {}
            app_ctx.logger.info(f"✅ Payment successful! Activated plan '{metadata.get('plan', '')}' for user '{metadata.get('uid', '')}'")
        elif ok and status == 'already_processed':
            app_ctx.logger.info(f"ℹ️ Checkout session {session.get('id', '')} already processed.")
        else:
            app_ctx.logger.warning(f"⚠️ Webhook checkout session {session.get('id', '')} not processed: {status}")

    return '', 200


def submit_manual_payment(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    plan = str(data.get('plan', '') or '').strip().lower()
    transaction_ref = str(data.get('transaction_ref', '') or '').strip()
    if plan not in PAID_PLANS:
        return app_ctx.jsonify({'error': 'Invalid plan selected'}), 400
    if not transaction_ref or len(transaction_ref) > MAX_TRANSACTION_REF_LEN:
        return app_ctx.jsonify({'error': 'Please enter the Easypaisa transaction reference'}), 400

    try:
        existing = app_ctx.payments_repo.list_by_uid(app_ctx.db, user.uid, app_ctx.firestore, 200)
        for doc in existing:
            payment = doc.to_dict() or {}
            if payment.get('transaction_ref') == transaction_ref and payment.get('status') != 'rejected':
                return app_ctx.jsonify({'error': 'This transaction reference was already submitted'}), 409
        now_ts = app_ctx.time.time()
        payment = {
            'user_id': user.uid,
            'plan': plan,
            'amount_cents': int(app_ctx.get_app_settings()['plan_prices'].get(plan, 0)),
            'currency': app_ctx.PLAN_CURRENCY,
            'payment_method': 'easypaisa',
            'transaction_ref': transaction_ref,
            'stripe_session_id': '',
            'status': 'pending',
            'created_at': now_ts,
            'paid_at': now_ts,
            'expires_at': None,
            'confirmed_by': '',
            'confirmed_at': None,
        }
        _timestamp, payment_ref = app_ctx.payments_repo.add_doc(app_ctx.db, payment)
    except Exception as e:
        app_ctx.logger.error(f"Error recording manual payment for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not record payment. Please try again.'}), 500

    payment['id'] = payment_ref.id
    return app_ctx.jsonify({'ok': True, 'payment': payment}), 201


def get_payment_history(app_ctx, request):
    user, error = app_ctx.authenticate_request(request, require_approved=False)
    if error:
        return error
    try:
        payments = app_ctx.query_utils.docs_to_dicts(app_ctx.payments_repo.list_by_uid(app_ctx.db, user.uid, app_ctx.firestore, 100))
        payments.sort(key=lambda item: item.get('created_at', 0) or 0, reverse=True)
    except Exception as e:
        app_ctx.logger.error(f"Error fetching payment history for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch payment history'}), 500
    return app_ctx.jsonify({'payments': payments})
