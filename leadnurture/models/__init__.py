# Models package - normalized database models
from leadnurture.models.user import User
from leadnurture.models.settings import OperatorSettings
from leadnurture.models.lead import Lead
from leadnurture.models.message import Message
from leadnurture.models.call import Call, CallRecording
from leadnurture.models.notification import Notification
