from flask import Blueprint

pages_bp = Blueprint('pages', __name__)


@pages_bp.route('/')
def index():
    from study_generator import runtime

    return runtime.render_protected_page_impl('index.html')


@pages_bp.route('/community')
def community():
    from study_generator import runtime

    return runtime.render_protected_page_impl('community.html')


@pages_bp.route('/community/<community_id>')
def community_room(community_id):
    from study_generator import runtime

    return runtime.render_protected_page_impl('community_room.html', community_id=community_id)


@pages_bp.route('/admin')
def admin_dashboard():
    from study_generator import runtime

    return runtime.render_protected_page_impl('admin.html', admin_only=True)


@pages_bp.route('/auth')
def auth_page():
    from study_generator import runtime

    return runtime.render_public_page_impl('auth.html')


@pages_bp.route('/verification-pending')
def verification_pending():
    from study_generator import runtime

    return runtime.render_public_page_impl('verification_pending.html')
