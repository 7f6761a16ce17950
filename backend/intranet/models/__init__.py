from intranet.models.chat_room import ChatRoom, ChatRoomType
from intranet.models.chat_room_participant import ChatRoomParticipant, ParticipantRole
from intranet.models.department import Department
from intranet.models.employee import Employee, EmployeeRole, EmployeeStatus
from intranet.models.hospital import Hospital, HospitalType
from intranet.models.message import Message, MessageType
from intranet.models.message_reaction import MessageReaction
from intranet.models.notification import Notification, NotificationType

__all__ = [
    "ChatRoom",
    "ChatRoomParticipant",
    "ChatRoomType",
    "Department",
    "Employee",
    "EmployeeRole",
    "EmployeeStatus",
    "Hospital",
    "HospitalType",
    "Message",
    "MessageReaction",
    "MessageType",
    "Notification",
    "NotificationType",
    "ParticipantRole",
]
