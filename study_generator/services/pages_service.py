"""Server-rendered page shells gated by the browser session cookie."""


def resolve_page_user(app_ctx, request):
    decoded_token = app_ctx.verify_session_cookie(request)
    if not decoded_token:
        return None, app_ctx.access_service.AUTH_PAGE
    user = app_ctx.resolve_request_user(decoded_token)
    if app_ctx.is_bootstrap_admin(decoded_token):
        return user, None
    return user, app_ctx.access_service.resolve_access_redirect(decoded_token, user.profile)


def render_protected_page(app_ctx, request, template_name, admin_only=False, **context):
    try:
        user, redirect_to = resolve_page_user(app_ctx, request)
    except Exception as e:
        app_ctx.logger.error(f"Could not resolve page access for {request.path}: {e}")
        return app_ctx.redirect(app_ctx.access_service.AUTH_PAGE, code=302)
    if redirect_to:
        return app_ctx.redirect(redirect_to, code=302)
    if admin_only and not user.is_moderator:
        return app_ctx.redirect('/', code=302)

    profile = app_ctx.profile_service.serialize_profile(user.profile or {'uid': user.uid, 'email': user.email}, include_private=False)
    profile['role'] = user.role
    return app_ctx.render_template(
        template_name,
        profile=profile,
        is_admin=user.is_admin,
        is_moderator=user.is_moderator,
        **context,
    )


def render_public_page(app_ctx, request, template_name):
    return app_ctx.render_template(template_name)
