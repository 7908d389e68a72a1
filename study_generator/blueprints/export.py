from flask import Blueprint

export_bp = Blueprint('export_api', __name__)


@export_bp.route('/api/export/pdf', methods=['POST'])
def export_pdf():
    from study_generator import runtime

    return runtime.export_pdf_impl()
