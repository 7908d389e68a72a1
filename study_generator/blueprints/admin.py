from flask import Blueprint

admin_bp = Blueprint('admin_api', __name__)


@admin_bp.route('/api/admin/pending', methods=['GET'])
def admin_pending():
    from study_generator import runtime

    return runtime.admin_pending_impl()


@admin_bp.route('/api/admin/users', methods=['GET'])
def admin_users():
    from study_generator import runtime

    return runtime.admin_users_impl()


@admin_bp.route('/api/admin/users/<uid>/approve', methods=['POST'])
def admin_approve(uid):
    from study_generator import runtime

    return runtime.admin_approve_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/reject', methods=['POST'])
def admin_reject(uid):
    from study_generator import runtime

    return runtime.admin_reject_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/block', methods=['POST'])
def admin_block(uid):
    from study_generator import runtime

    return runtime.admin_block_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/role', methods=['POST'])
def admin_role(uid):
    from study_generator import runtime

    return runtime.admin_role_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/plan', methods=['POST'])
def admin_plan(uid):
    from study_generator import runtime

    return runtime.admin_plan_impl(uid)


@admin_bp.route('/api/admin/users/<uid>/quotas', methods=['POST'])
def admin_quotas(uid):
    from study_generator import runtime

    return runtime.admin_quotas_impl(uid)


@admin_bp.route('/api/admin/actions', methods=['GET'])
def admin_actions():
    from study_generator import runtime

    return runtime.admin_actions_impl()


@admin_bp.route('/api/admin/settings', methods=['GET'])
def admin_get_settings():
    from study_generator import runtime

    return runtime.admin_get_settings_impl()


@admin_bp.route('/api/admin/settings', methods=['PUT'])
def admin_update_settings():
    from study_generator import runtime

    return runtime.admin_update_settings_impl()


@admin_bp.route('/api/admin/overview', methods=['GET'])
def admin_overview():
    from study_generator import runtime

    return runtime.admin_overview_impl()


@admin_bp.route('/api/admin/prompts', methods=['GET'])
def admin_prompts():
    from study_generator import runtime

    return runtime.admin_prompts_impl()


@admin_bp.route('/api/admin/payments', methods=['GET'])
def admin_payments():
    from study_generator import runtime

    return runtime.admin_payments_impl()


@admin_bp.route('/api/admin/payments/<payment_id>/confirm', methods=['POST'])
def admin_confirm_payment(payment_id):
    from study_generator import runtime

    return runtime.admin_confirm_payment_impl(payment_id)


@admin_bp.route('/api/admin/payments/<payment_id>/reject', methods=['POST'])
def admin_reject_payment(payment_id):
    from study_generator import runtime

    return runtime.admin_reject_payment_impl(payment_id)
