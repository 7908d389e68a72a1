from flask import Blueprint

auth_bp = Blueprint('auth_api', __name__)


@auth_bp.route('/api/session/login', methods=['POST'])
def session_login():
    from study_generator import runtime

    return runtime.session_login_impl()


@auth_bp.route('/api/session/logout', methods=['POST'])
def session_logout():
    from study_generator import runtime

    return runtime.session_logout_impl()


@auth_bp.route('/api/auth/register', methods=['POST'])
def register():
    from study_generator import runtime

    return runtime.register_impl()


@auth_bp.route('/api/auth/user', methods=['GET'])
def get_auth_user():
    from study_generator import runtime

    return runtime.get_auth_user_impl()


@auth_bp.route('/api/auth/check', methods=['POST'])
def auth_check():
    from study_generator import runtime

    return runtime.auth_check_impl()


@auth_bp.route('/api/verification-status', methods=['GET'])
def verification_status():
    from study_generator import runtime

    return runtime.verification_status_impl()


@auth_bp.route('/api/profile', methods=['PATCH'])
def update_profile():
    from study_generator import runtime

    return runtime.update_profile_impl()
