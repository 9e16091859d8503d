import asyncio
import logging
import os
import tempfile

from scatterbrain.ai_clients import OpenAIClient
from scatterbrain.error_handler import AppError, InvalidInputError

logger = logging.getLogger(__name__)

MAX_AUDIO_BYTES = 25 * 1024 * 1024  # Whisper upload limit

class AudioService:
    def __init__(self, openai_client: OpenAIClient, timeout: float = 25):
        self.client = openai_client
        self.timeout = timeout
        logger.info(f"Audio service initialized with {timeout}s transcription timeout")

    async def transcribe(self, audio_data: bytes, content_type: str) -> str:
        """Transcribe a recorded voice memo and return the text"""
        if not audio_data:
            raise InvalidInputError("No audio was uploaded")
        if len(audio_data) > MAX_AUDIO_BYTES:
            raise InvalidInputError("Recording is too long. Please keep voice memos under 25MB.")

        logger.info(f"Audio received: {len(audio_data)} bytes ({content_type})")
        loop = asyncio.get_running_loop()
        try:
            # The OpenAI SDK call blocks, so keep it off the event loop
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._transcribe_file, audio_data, content_type),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error("Audio transcription timed out")
            raise AppError(
                "Transcription timed out",
                status_code=504,
                user_message="The recording took too long to process. Try a shorter memo or type your thought."
            )

    def _transcribe_file(self, audio_data: bytes, content_type: str) -> str:
        extension = self._get_extension_from_content_type(content_type)
        with tempfile.NamedTemporaryFile(suffix=f'.{extension}') as temp_file:
            temp_file.write(audio_data)
            temp_file.flush()
            logger.info(f"Transcribing {os.path.getsize(temp_file.name)} bytes with Whisper...")

            with open(temp_file.name, 'rb') as audio_file:
                transcript = self.client.transcribe(audio_file)

        logger.info(f"Transcription complete: {transcript[:50]}...")
        return transcript.strip()

    def _get_extension_from_content_type(self, content_type: str) -> str:
        """Convert content type to file extension"""
        content_type_map = {
            'audio/mp3': 'mp3',
            'audio/mpeg': 'mp3',
            'audio/mp4': 'm4a',
            'audio/m4a': 'm4a',
            'audio/x-m4a': 'm4a',
            'audio/ogg': 'ogg',
            'audio/wav': 'wav',
            'audio/x-wav': 'wav',
            'audio/webm': 'webm',
        }

        if not content_type:
            logger.warning("No content type provided, defaulting to webm")
            return 'webm'  # browser MediaRecorder default

        extension = content_type_map.get(content_type.split(';')[0].strip().lower())
        if not extension:
            logger.warning(f"Unknown content type: {content_type}, defaulting to webm")
            return 'webm'

        return extension
