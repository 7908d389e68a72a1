from .config import load_config
from .extensions import init_extensions
from .logging_config import configure_logging


def create_app():
    """App factory entrypoint.

    Route registration and external clients (Firebase, Gemini, Stripe) are
    set up in `runtime`; the factory validates config and wires logging first.
    """
    config = load_config()
    configure_logging(config.log_level)

    from .runtime import app

    init_extensions(app, config)
    return app
