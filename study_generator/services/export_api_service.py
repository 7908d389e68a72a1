"""Business logic handlers for PDF export."""

import logging

PDF_LIMIT_MESSAGE = 'Daily PDF limit reached. Upgrade your plan or try again tomorrow.'


def export_pdf(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    maintenance = app_ctx.check_app_enabled(user)
    if maintenance:
        return maintenance

    data = request.get_json(silent=True) or {}
    content = data.get('content')
    if not isinstance(content, dict) or not content:
        return app_ctx.jsonify({'error': 'No content to export'}), 400
    section = str(data.get('section') or app_ctx.pdf_service.COMBINED_SECTION).strip()
    difficulty = app_ctx.prompt_registry.sanitize_difficulty(data.get('difficulty'))

    # Re-validate client supplied content before rendering it.
    options = [key for key in app_ctx.generation_service.CONTENT_OPTIONS if key in content]
    shaped = app_ctx.generation_service.shape_generated_content(content, options)
    try:
        app_ctx.pdf_service.resolve_export_sections(shaped, section)
    except app_ctx.pdf_service.ExportError as e:
        return app_ctx.jsonify({'error': str(e)}), 400

    limited = app_ctx.enforce_rate_limit(
        'export',
        user.uid,
        app_ctx.EXPORT_RATE_LIMIT_MAX_REQUESTS,
        app_ctx.EXPORT_RATE_LIMIT_WINDOW_SECONDS,
        'Too many PDF exports. Please wait a moment and try again.',
    )
    if limited:
        return limited

    try:
        quotas, usage, date_key = app_ctx.get_user_quota_state(user)
    except Exception as e:
        app_ctx.logger.error(f"Could not load PDF quota for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not check your daily quota. Please try again.'}), 500
    if not app_ctx.quota_service.can_generate(quotas, usage, 'pdfs', 1):
        return app_ctx.jsonify({
            'error': PDF_LIMIT_MESSAGE,
            'quota_exceeded': 'pdfs',
            'quota': app_ctx.quota_service.build_quota_snapshot(quotas, usage),
        }), 429

    # A failed build must not consume a PDF credit.
    try:
        pdf_io = app_ctx.pdf_service.build_study_pdf(
            shaped,
            section=section,
            difficulty=difficulty,
            watermark_name=(user.profile or {}).get('real_name', ''),
        )
    except Exception as e:
        app_ctx.logger.error(f"Error building PDF ({section}) for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not export PDF'}), 500

    try:
        granted = app_ctx.reserve_usage(user.uid, date_key, 'pdfs', 1, quotas.get('pdfs', 0))
    except Exception as e:
        app_ctx.logger.error(f"Could not reserve PDF quota for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not check your daily quota. Please try again.'}), 500
    if granted < 1:
        return app_ctx.jsonify({'error': PDF_LIMIT_MESSAGE, 'quota_exceeded': 'pdfs'}), 429

    app_ctx.log_event(logging.INFO, 'pdf_exported', uid=user.uid, section=section)
    return app_ctx.send_file(
        pdf_io,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=app_ctx.pdf_service.export_filename(section),
    )
