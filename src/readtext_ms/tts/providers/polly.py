"""
AWS Polly Provider.

Calls SynthesizeSpeech with OutputFormat "mp3" and reads the streamed
AudioStream into one buffer. Credentials and region follow the standard
boto3 chain (environment, shared config, instance role); AWS_REGION
overrides `providers.polly.region`.
"""
from __future__ import annotations

import threading
from contextlib import closing
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from readtext_ms.core.config import PollyConfig
from readtext_ms.core.errors import UpstreamSynthesisError
from readtext_ms.core.logging import get_logger, verbose
from readtext_ms.tts.provider import SynthesisProvider

_LOG = get_logger("readtext-ms.polly")


class PollyProvider(SynthesisProvider):
    """
    AWS Polly through a boto3 client.

    Args:
        config: Polly provider configuration.
        client: boto3 Polly client to use instead of creating one.
    """

    name = "polly"
    display_name = "Polly"
    VOICES = {
        "Camila": "Camila",
        "Vitoria": "Vitoria",
        "Ricardo": "Ricardo",
        "Thiago": "Thiago",
        "female": "Camila",
        "male": "Ricardo",
        "female-2": "Vitoria",
        "male-2": "Thiago",
        # Google voice names, so one voice parameter works with either vendor
        "pt-BR-Neural2": "Ricardo",
        "pt-BR-Neural2-A": "Camila",
        "pt-BR-Neural2-B": "Ricardo",
        "pt-BR-Neural2-C": "Vitoria",
    }

    def __init__(self, config: PollyConfig, client: Any = None):
        super().__init__(config.default_voice, config.voice_mapping)
        self.config = config
        self._client = client
        self._lock = threading.Lock()
        self._has_credentials: Optional[bool] = None

    @property
    def client(self) -> Any:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = boto3.client(
                        "polly",
                        region_name=self.config.region,
                        config=BotoConfig(
                            region_name=self.config.region,
                            retries={"max_attempts": 2, "mode": "standard"},
                            connect_timeout=self.config.timeout_s,
                            read_timeout=self.config.timeout_s,
                        ),
                    )
        return self._client

    def is_configured(self) -> bool:
        """Resolve the credential chain once; later calls reuse the answer."""
        if self._client is not None:
            return True
        if self._has_credentials is None:
            session = boto3.Session(region_name=self.config.region)
            self._has_credentials = session.get_credentials() is not None
        return self._has_credentials

    def build_request(self, text: str, language_code: str, voice_id: Optional[str]) -> Dict[str, Any]:
        return {
            "Text": text,
            "OutputFormat": "mp3",
            "VoiceId": self.resolve_voice(voice_id),
            "LanguageCode": language_code,
            "Engine": self.config.engine,
        }

    def synthesize(self, text: str, language_code: str, voice_id: Optional[str] = None) -> bytes:
        request = self.build_request(text, language_code, voice_id)
        try:
            response = self.client.synthesize_speech(**request)
            stream = response.get("AudioStream")
            if stream is None:
                raise UpstreamSynthesisError("Polly não retornou áudio", provider=self.name)
            with closing(stream) as body:
                audio = body.read()
        except ClientError as e:
            meta = e.response.get("ResponseMetadata", {})
            err = e.response.get("Error", {})
            raise UpstreamSynthesisError(
                err.get("Message") or "Falha no Polly",
                provider=self.name,
                upstream_status=meta.get("HTTPStatusCode"),
                details={"aws_code": err.get("Code")},
            ) from e
        except BotoCoreError as e:
            raise UpstreamSynthesisError(
                f"Falha ao contatar o Polly: {type(e).__name__}",
                provider=self.name,
                details={"error": str(e)},
            ) from e

        verbose(_LOG, "polly_synth_ok", voice=request["VoiceId"], bytes=len(audio))
        return audio
