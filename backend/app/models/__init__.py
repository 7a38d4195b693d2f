from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.classroom import Classroom, ClassroomStatus  # noqa: F401
from app.models.classroom_unavailability import ClassroomUnavailability  # noqa: F401
from app.models.faculty import Faculty  # noqa: F401
from app.models.faculty_preference import FacultyPreference  # noqa: F401
from app.models.subject import Subject, SubjectType  # noqa: F401
from app.models.timetable import Timetable, TimetableStatus  # noqa: F401
