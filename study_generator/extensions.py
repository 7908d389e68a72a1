def init_extensions(app, config=None) -> None:
    """Record factory state on the Flask app; runtime clients live in `runtime`."""
    if app is None:
        return
    if not hasattr(app, 'extensions'):
        return
    state = app.extensions.setdefault('study_generator', {})
    state['factory_initialized'] = True
    if config is not None:
        state['log_level'] = config.log_level
        state['sentry_environment'] = config.sentry_environment
