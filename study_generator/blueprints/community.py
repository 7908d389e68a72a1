from flask import Blueprint

community_bp = Blueprint('community_api', __name__)


@community_bp.route('/api/communities', methods=['GET'])
def list_communities():
    from study_generator import runtime

    return runtime.list_communities_impl()


@community_bp.route('/api/communities', methods=['POST'])
def create_community():
    from study_generator import runtime

    return runtime.create_community_impl()


@community_bp.route('/api/communities/<community_id>', methods=['GET'])
def get_community(community_id):
    from study_generator import runtime

    return runtime.get_community_impl(community_id)


@community_bp.route('/api/communities/<community_id>/join', methods=['POST'])
def join_community(community_id):
    from study_generator import runtime

    return runtime.join_community_impl(community_id)


@community_bp.route('/api/communities/<community_id>/leave', methods=['POST'])
def leave_community(community_id):
    from study_generator import runtime

    return runtime.leave_community_impl(community_id)


@community_bp.route('/api/communities/<community_id>/messages', methods=['GET'])
def list_messages(community_id):
    from study_generator import runtime

    return runtime.list_messages_impl(community_id)


@community_bp.route('/api/communities/<community_id>/messages', methods=['POST'])
def post_message(community_id):
    from study_generator import runtime

    return runtime.post_message_impl(community_id)


@community_bp.route('/api/messages/<message_id>', methods=['DELETE'])
def delete_message(message_id):
    from study_generator import runtime

    return runtime.delete_message_impl(message_id)


@community_bp.route('/api/messages/<message_id>/report', methods=['POST'])
def report_message(message_id):
    from study_generator import runtime

    return runtime.report_message_impl(message_id)


@community_bp.route('/api/communities/<community_id>/reports', methods=['GET'])
def list_reports(community_id):
    from study_generator import runtime

    return runtime.list_reports_impl(community_id)


@community_bp.route('/api/reports/<report_id>/resolve', methods=['POST'])
def resolve_report(report_id):
    from study_generator import runtime

    return runtime.resolve_report_impl(report_id)


@community_bp.route('/api/communities/<community_id>/bans', methods=['POST'])
def ban_member(community_id):
    from study_generator import runtime

    return runtime.ban_member_impl(community_id)
