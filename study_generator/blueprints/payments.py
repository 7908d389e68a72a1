from flask import Blueprint

payments_bp = Blueprint('payments_api', __name__)


@payments_bp.route('/api/config', methods=['GET'])
def get_config():
    from study_generator import runtime

    return runtime.get_config_impl()


@payments_bp.route('/api/create-checkout-session', methods=['POST'])
def create_checkout_session():
    from study_generator import runtime

    return runtime.create_checkout_session_impl()


@payments_bp.route('/api/stripe-webhook', methods=['POST'])
def stripe_webhook():
    from study_generator import runtime

    return runtime.stripe_webhook_impl()


@payments_bp.route('/api/payments/manual', methods=['POST'])
def manual_payment():
    from study_generator import runtime

    return runtime.manual_payment_impl()


@payments_bp.route('/api/payments', methods=['GET'])
def payment_history():
    from study_generator import runtime

    return runtime.payment_history_impl()
