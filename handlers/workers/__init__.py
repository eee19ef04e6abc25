"""Worker handlers - commands, buttons, locations and photos."""

from .messages import handle_text, handle_callback
from .location import handle_location
from .photos import handle_photo

__all__ = ['handle_text', 'handle_callback', 'handle_location', 'handle_photo']
