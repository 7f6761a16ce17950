from intranet.repositories.chat_room_repository import ChatRoomRepository
from intranet.repositories.department_repository import DepartmentRepository
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.repositories.hospital_repository import HospitalRepository
from intranet.repositories.message_reaction_repository import MessageReactionRepository
from intranet.repositories.message_repository import MessageRepository
from intranet.repositories.notification_repository import NotificationRepository
from intranet.repositories.participant_repository import ParticipantRepository

__all__ = [
    "ChatRoomRepository",
    "DepartmentRepository",
    "EmployeeRepository",
    "HospitalRepository",
    "MessageReactionRepository",
    "MessageRepository",
    "NotificationRepository",
    "ParticipantRepository",
]
