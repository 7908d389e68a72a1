from flask import Blueprint

generate_bp = Blueprint('generate_api', __name__)


@generate_bp.route('/api/generate', methods=['POST'])
def generate():
    from study_generator import runtime

    return runtime.generate_impl()


@generate_bp.route('/api/extract-text', methods=['POST'])
def extract_text():
    from study_generator import runtime

    return runtime.extract_text_impl()


@generate_bp.route('/api/quota', methods=['GET'])
def get_quota():
    from study_generator import runtime

    return runtime.get_quota_impl()
