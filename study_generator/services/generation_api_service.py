"""Business logic handlers for generation, quota and extraction APIs."""

import logging


def _quota_exceeded_response(app_ctx, quota_type, snapshot):
    label = app_ctx.quota_service.QUOTA_LABELS.get(quota_type, quota_type)
    return app_ctx.jsonify({
        'error': f"Daily {label} limit reached. Upgrade your plan or try again tomorrow.",
        'quota_exceeded': quota_type,
        'quota': snapshot,
    }), 429


def generate(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    maintenance = app_ctx.check_app_enabled(user)
    if maintenance:
        return maintenance

    data = request.get_json(silent=True) or {}
    text = data.get('text', '')
    raw_options = data.get('options')
    if not isinstance(text, str) or not text.strip() or not isinstance(raw_options, list) or not raw_options:
        return app_ctx.jsonify({'error': 'Missing required fields: text, difficulty, or options'}), 400
    options = app_ctx.generation_service.parse_requested_options(raw_options)
    if not options:
        return app_ctx.jsonify({'error': 'No valid content options selected'}), 400
    difficulty = app_ctx.prompt_registry.sanitize_difficulty(data.get('difficulty'))

    limited = app_ctx.enforce_rate_limit(
        'generate',
        user.uid,
        app_ctx.GENERATE_RATE_LIMIT_MAX_REQUESTS,
        app_ctx.GENERATE_RATE_LIMIT_WINDOW_SECONDS,
        'Too many generation requests. Please wait a moment and try again.',
    )
    if limited:
        return limited

    try:
        quotas, usage, date_key = app_ctx.get_user_quota_state(user)
    except Exception as e:
        app_ctx.logger.error(f"Could not load quota for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not check your daily quota. Please try again.'}), 500

    metered = {
        option: app_ctx.quota_service.OPTION_QUOTA_TYPES[option]
        for option in options
        if option in app_ctx.quota_service.OPTION_QUOTA_TYPES
    }
    for quota_type in metered.values():
        if app_ctx.quota_service.remaining_quota(quotas, usage, quota_type) <= 0:
            app_ctx.log_event(logging.INFO, 'quota_exceeded', uid=user.uid, quota_type=quota_type)
            return _quota_exceeded_response(app_ctx, quota_type, app_ctx.quota_service.build_quota_snapshot(quotas, usage))

    try:
        content, warning = app_ctx.generation_service.generate_study_content(
            text,
            difficulty,
            options,
            client=app_ctx.client,
            types_module=app_ctx.types,
            model=app_ctx.MODEL_STUDY,
            logger=app_ctx.logger,
        )
    except app_ctx.generation_service.GenerationError as e:
        return app_ctx.jsonify({'error': e.message}), e.status_code

    wanted = {
        quota_type: (len(content.get(option) or []), quotas.get(quota_type, 0))
        for option, quota_type in metered.items()
    }
    try:
        granted, usage = app_ctx.reserve_usages(user.uid, date_key, wanted)
    except Exception as e:
        app_ctx.logger.error(f"Could not record usage for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not record your usage. Please try again.'}), 500

    trimmed = []
    for option, quota_type in metered.items():
        items = content.get(option) or []
        if granted[quota_type] < len(items):
            trimmed.append(option)
        content[option] = items[:granted[quota_type]]

    app_ctx.log_event(
        logging.INFO,
        'generation_finished',
        uid=user.uid,
        difficulty=difficulty,
        options=options,
        counts={option: len(value) for option, value in content.items() if isinstance(value, list)},
    )
    payload = {
        'content': content,
        'difficulty': difficulty,
        'quota': app_ctx.quota_service.build_quota_snapshot(quotas, usage),
    }
    warnings = [warning] if warning else []
    if trimmed:
        warnings.append('Some sections were shortened to fit your remaining daily quota.')
    if warnings:
        payload['warning'] = ' '.join(warnings)
        payload['trimmed'] = trimmed
    return app_ctx.jsonify(payload)


def get_quota(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    try:
        quotas, usage, _date_key = app_ctx.get_user_quota_state(user)
    except Exception as e:
        app_ctx.logger.error(f"Error fetching quota for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch quota'}), 500
    snapshot = app_ctx.quota_service.build_quota_snapshot(quotas, usage)
    snapshot['plan'] = app_ctx.quota_service.effective_plan(user.profile)
    return app_ctx.jsonify(snapshot)


def extract_text(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    maintenance = app_ctx.check_app_enabled(user)
    if maintenance:
        return maintenance

    uploaded = request.files.get('file')
    if uploaded is None or not uploaded.filename:
        return app_ctx.jsonify({'error': app_ctx.extraction_service.ERROR_NO_FILE}), 400

    limited = app_ctx.enforce_rate_limit(
        'extract',
        user.uid,
        app_ctx.EXTRACT_RATE_LIMIT_MAX_REQUESTS,
        app_ctx.EXTRACT_RATE_LIMIT_WINDOW_SECONDS,
        'Too many uploads. Please wait a moment and try again.',
    )
    if limited:
        return limited

    data = uploaded.read()
    if len(data) > app_ctx.MAX_EXTRACT_UPLOAD_BYTES:
        max_mb = app_ctx.MAX_EXTRACT_UPLOAD_BYTES // (1024 * 1024)
        return app_ctx.jsonify({'error': f'File too large. Maximum size is {max_mb}MB.'}), 400

    try:
        text = app_ctx.extraction_service.extract_text(
            data,
            uploaded.filename,
            uploaded.mimetype,
            client=app_ctx.client,
            types_module=app_ctx.types,
            model=app_ctx.MODEL_OCR,
            logger=app_ctx.logger,
        )
    except app_ctx.extraction_service.ExtractionError as e:
        return app_ctx.jsonify({'error': e.message}), e.status_code
    except Exception as e:
        app_ctx.logger.error(f"Error extracting text from {uploaded.filename}: {e}")
        return app_ctx.jsonify({'error': 'Failed to extract text from file'}), 500

    app_ctx.log_event(logging.INFO, 'text_extracted', uid=user.uid, chars=len(text))
    return app_ctx.jsonify({'text': text})
