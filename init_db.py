"""
Database Initialization Script
Creates all tables and seeds a default admin plus a small sample hierarchy
"""

import sys
import logging

from achievetrack import create_app
from achievetrack.models import db, ProgramType, UserRole
from achievetrack.services.hierarchy_service import HierarchyService
from achievetrack.services.user_service import UserService

logger = logging.getLogger(__name__)

app = create_app()

def init_database():
    """Create all database tables and seed default data"""
    with app.app_context():
        try:
            logger.info("Creating database tables...")
            # Drop all to ensure schema updates
            db.drop_all()
            db.create_all()

            UserService.create_user('admin@example.com', 'admin123', 'System Administrator', UserRole.ADMIN)

            cse = HierarchyService.create_department('Computer Engineering', 'CSE')
            btech = HierarchyService.create_program('B.Tech Computer Engineering', 'BTECH', ProgramType.UG.value, cse.id)
            se = HierarchyService.create_academic_structure('Second Year', 'SE', 2, cse.id, btech.id,
                                                            is_semester=True, semester=3)
            div_a = HierarchyService.create_division('Division A', 'A', se.id)
            batch_1 = HierarchyService.create_batch('A1', 1, div_a.id)

            UserService.create_user('hod.cse@college.edu', 'password', 'Prof. HOD CSE', UserRole.HOD,
                                    assigned_department_id=cse.id)
            UserService.create_user('advisor.se.a@college.edu', 'password', 'Class Advisor SE-A',
                                    UserRole.CLASS_ADVISOR,
                                    assigned_department_id=cse.id,
                                    assigned_academic_structure_id=se.id,
                                    assigned_division_id=div_a.id)
            UserService.create_user('student@college.edu', 'password', 'Sample Student', UserRole.STUDENT,
                                    student_id='CSE2024001', batch_id=batch_1.id)

            logger.info("Default users created. Admin login: admin@example.com / admin123")
            return True
        except Exception as e:
            logger.exception(f"Database initialization failed: {e}")
            return False

if __name__ == '__main__':
    success = init_database()
    sys.exit(0 if success else 1)
