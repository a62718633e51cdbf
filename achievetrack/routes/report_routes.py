from flask import Blueprint, jsonify, request, send_file

from achievetrack.auth import current_principal, role_required
from achievetrack.models import UserRole
from achievetrack.services.report_service import ReportService

report_bp = Blueprint('reports', __name__, url_prefix='/reports')

# --- Helper ---
def get_filters():
    return {
        "academic_year": request.args.get('academicYear'),
        "program_id": request.args.get('programId', type=int),
        "academic_structure_id": request.args.get('academicStructureId', type=int),
        "division_id": request.args.get('divisionId', type=int),
        "batch_id": request.args.get('batchId', type=int),
    }

@report_bp.route('')
@role_required(UserRole.HOD, UserRole.ADMIN)
def report():
    data = ReportService.generate(
        current_principal(),
        report_type=request.args.get('type'),
        statuses=ReportService.parse_statuses(request.args.getlist('status')),
        filters=get_filters()
    )
    return jsonify(data)

@report_bp.route('/export')
@role_required(UserRole.HOD, UserRole.ADMIN)
def export_report():
    report_type = request.args.get('type')
    output = ReportService.export_excel(
        current_principal(),
        report_type=report_type,
        statuses=ReportService.parse_statuses(request.args.getlist('status')),
        filters=get_filters()
    )
    return send_file(
        output,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=ReportService.export_filename(report_type)
    )
