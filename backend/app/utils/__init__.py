from .json import dumps
from .messages import sanitize_message_text, sms_preview
from .errors import error_response
