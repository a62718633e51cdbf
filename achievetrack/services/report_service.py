import io
import logging
from collections import OrderedDict
from datetime import datetime

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from achievetrack.errors import Forbidden, ValidationFailed
from achievetrack.models import Achievement, AchievementStatus, User
from achievetrack.services.access_control import Action, can_access, visibility_criterion

logger = logging.getLogger(__name__)

REPORT_TYPES = ('monthly', 'semester', 'class', 'division', 'batch')
DEFAULT_STATUSES = (AchievementStatus.SUBMITTED, AchievementStatus.VERIFIED)
MISSING_KEY = "N/A"


def _monthly_key(achievement):
    if not achievement.event_date:
        return None
    return achievement.event_date.strftime('%B %Y')


def _semester_key(achievement):
    return achievement.semester


def _class_key(achievement):
    structure = achievement.student.academic_structure
    return structure.name if structure else None


def _division_key(achievement):
    division = achievement.student.division
    return division.name if division else None


def _batch_key(achievement):
    batch = achievement.student.batch
    return batch.name if batch else None


GROUPERS = {
    'monthly': _monthly_key,
    'semester': _semester_key,
    'class': _class_key,
    'division': _division_key,
    'batch': _batch_key,
}


class ReportService:

    @staticmethod
    def parse_statuses(values):
        if not values:
            return list(DEFAULT_STATUSES)
        statuses = []
        for value in values:
            if value not in AchievementStatus.__members__:
                raise ValidationFailed("Invalid filter", details={'status': [f"Not a valid status: {value}"]})
            statuses.append(AchievementStatus(value))
        return statuses

    @staticmethod
    def fetch(principal, statuses=None, filters=None, policy=None):
        """
        Achievements visible to `principal` with a status in `statuses`,
        narrowed by the optional hierarchy/academic-year filters.
        """
        if not can_access(principal, Action.REPORT, policy=policy):
            raise Forbidden()
        filters = filters or {}
        statuses = statuses or list(DEFAULT_STATUSES)

        query = Achievement.query.filter(
            Achievement.status.in_(statuses),
            visibility_criterion(principal, policy)
        )
        if filters.get('academic_year'):
            query = query.filter(Achievement.academic_year == filters['academic_year'])

        student_filters = []
        for key, column in (('program_id', User.program_id),
                            ('academic_structure_id', User.academic_structure_id),
                            ('division_id', User.division_id),
                            ('batch_id', User.batch_id)):
            if filters.get(key):
                student_filters.append(column == filters[key])
        if student_filters:
            query = query.join(User, Achievement.student_id == User.id).filter(*student_filters)

        return query.order_by(Achievement.event_date.desc(), Achievement.id.desc()).all()

    @staticmethod
    def group(achievements, report_type):
        """Group achievements by the report key; records without one land under 'N/A'."""
        key_for = GROUPERS[report_type]
        grouped = OrderedDict()
        for achievement in achievements:
            key = key_for(achievement) or MISSING_KEY
            grouped.setdefault(key, []).append(achievement)
        return grouped

    @staticmethod
    def generate(principal, report_type=None, statuses=None, filters=None, policy=None):
        if report_type and report_type not in REPORT_TYPES:
            raise ValidationFailed("Invalid report type", details={'type': [f"Must be one of: {', '.join(REPORT_TYPES)}"]})

        filters = filters or {}
        achievements = ReportService.fetch(principal, statuses, filters, policy)

        if report_type:
            data = {
                key: [a.to_dict() for a in items]
                for key, items in ReportService.group(achievements, report_type).items()
            }
        else:
            data = {
                'total': len(achievements),
                'achievements': [a.to_dict() for a in achievements],
            }

        return {
            'type': report_type or 'all',
            'academicYear': filters.get('academic_year') or 'All',
            'totalAchievements': len(achievements),
            'data': data,
        }

    @staticmethod
    def export_excel(principal, report_type=None, statuses=None, filters=None, policy=None):
        """Same grouping as `generate`, flattened into one worksheet."""
        if report_type and report_type not in REPORT_TYPES:
            raise ValidationFailed("Invalid report type", details={'type': [f"Must be one of: {', '.join(REPORT_TYPES)}"]})

        achievements = ReportService.fetch(principal, statuses, filters, policy)
        if report_type:
            grouped = ReportService.group(achievements, report_type)
        else:
            grouped = OrderedDict([('All', achievements)])

        rows = []
        for group_key, items in grouped.items():
            for a in items:
                student = a.student
                rows.append({
                    "Group": group_key,
                    "Student Name": student.name,
                    "Student ID": student.student_id,
                    "Title": a.title,
                    "Category": a.category.value,
                    "Status": a.status.value,
                    "Event Date": a.event_date,
                    "Academic Year": a.academic_year,
                    "Semester": a.semester or MISSING_KEY,
                    "Remarks": a.remarks or "",
                })

        columns = ["Group", "Student Name", "Student ID", "Title", "Category", "Status",
                   "Event Date", "Academic Year", "Semester", "Remarks"]
        df = pd.DataFrame(rows, columns=columns)

        output = io.BytesIO()
        sheet_name = (report_type or 'all').capitalize()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            ReportService._format_excel_sheet(writer, df, sheet_name)
        output.seek(0)

        logger.info(f"Exported {len(rows)} achievements ({report_type or 'all'}) for user {principal.id}")
        return output

    @staticmethod
    def export_filename(report_type=None):
        return f"achievements_{report_type or 'all'}_{datetime.now().strftime('%Y%m%d')}.xlsx"

    @staticmethod
    def _format_excel_sheet(writer, df, sheet_name):
        worksheet = writer.sheets[sheet_name]
        for cell in worksheet[1]:
            cell.font = Font(bold=True)
        for idx, column in enumerate(df.columns, start=1):
            values = [str(v) for v in df[column].tolist()]
            width = max([len(str(column))] + [len(v) for v in values]) + 2
            worksheet.column_dimensions[get_column_letter(idx)].width = min(width, 60)
