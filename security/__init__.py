# Security module - Microphone permission checking
# Default deny policy - no implicit trust

from .permissions import MicrophonePermission

__all__ = ["MicrophonePermission"]
