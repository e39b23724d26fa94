"""
Permission System
-----------------
Microphone access check queried before the capture stream opens.
Default deny: any failure of the probe counts as no permission.
"""

from typing import Any, Optional
import logging

try:
    import sounddevice as sd
except (ImportError, OSError):
    sd = None


class MicrophonePermission:
    """
    Probes whether the input device accepts the capture settings.

    Rules:
    - Default deny
    - No backend means no permission
    """

    def __init__(
        self,
        device: Optional[Any] = None,
        sample_rate: int = 44100,
        channels: int = 1,
        dtype: str = "int16",
    ):
        self.device = device
        self.sample_rate = sample_rate
        self.channels = channels
        self.dtype = dtype
        self._logger = logging.getLogger("mediakeep.security")

    def has_capture_permission(self) -> bool:
        if sd is None:
            self._logger.warning("sounddevice not available, capture denied")
            return False

        try:
            sd.check_input_settings(
                device=self.device,
                channels=self.channels,
                dtype=self.dtype,
                samplerate=self.sample_rate,
            )
        except Exception as e:
            self._logger.warning(f"Microphone access denied: {e}")
            return False

        self._logger.debug("Microphone access granted")
        return True
