"""
Google Cloud Text-to-Speech Provider.

Posts to the v1 `text:synthesize` REST endpoint:

    {"input": {"text": ...},
     "voice": {"languageCode": "pt-BR", "name": "pt-BR-Neural2-B"},
     "audioConfig": {"audioEncoding": "MP3"}}

and decodes the base64 `audioContent` of the reply.

Authentication (first available wins):
    1. GOOGLE_API_KEY: sent as the `key` query parameter
    2. GOOGLE_ACCESS_TOKEN: long-lived OAuth2 bearer token
    3. GOOGLE_APPLICATION_CREDENTIALS: service-account file, exchanged
       for a short-lived bearer token with google-auth and refreshed
       when it expires
"""
from __future__ import annotations

import base64
import binascii
import threading
from typing import Any, Dict, Optional

import google.auth.exceptions
import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from readtext_ms.core.config import GoogleConfig
from readtext_ms.core.errors import UpstreamSynthesisError
from readtext_ms.core.logging import debug, get_logger, verbose
from readtext_ms.tts.provider import SynthesisProvider

_LOG = get_logger("readtext-ms.google")

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class GoogleProvider(SynthesisProvider):
    """
    Google Cloud TTS over REST with httpx.

    Args:
        config: Google provider configuration (credentials included).
        client: httpx client to use instead of creating one.
    """

    name = "google"
    display_name = "Google"
    VOICES = {
        "pt-BR-Neural2": "pt-BR-Neural2-B",
        "pt-BR-Neural2-A": "pt-BR-Neural2-A",
        "pt-BR-Neural2-B": "pt-BR-Neural2-B",
        "pt-BR-Neural2-C": "pt-BR-Neural2-C",
        "pt-BR-Wavenet-A": "pt-BR-Wavenet-A",
        "pt-BR-Wavenet-B": "pt-BR-Wavenet-B",
        "pt-BR-Standard-A": "pt-BR-Standard-A",
        "female": "pt-BR-Neural2-A",
        "male": "pt-BR-Neural2-B",
        "female-2": "pt-BR-Neural2-C",
        # Polly voice names, so one voice parameter works with either vendor
        "Camila": "pt-BR-Neural2-A",
        "Vitoria": "pt-BR-Neural2-C",
        "Ricardo": "pt-BR-Neural2-B",
        "Thiago": "pt-BR-Neural2-B",
    }

    def __init__(self, config: GoogleConfig, client: Optional[httpx.Client] = None):
        super().__init__(config.default_voice, config.voice_mapping)
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._credentials: Optional[service_account.Credentials] = None
        self._lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout_s)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.config.api_key or self.config.access_token or self.config.credentials_file)

    def build_payload(self, text: str, language_code: str, voice_id: Optional[str]) -> Dict[str, Any]:
        return {
            "input": {"text": text},
            "voice": {"languageCode": language_code, "name": self.resolve_voice(voice_id)},
            "audioConfig": {"audioEncoding": self.config.audio_encoding},
        }

    def synthesize(self, text: str, language_code: str, voice_id: Optional[str] = None) -> bytes:
        payload = self.build_payload(text, language_code, voice_id)
        params, headers = self._auth()

        try:
            response = self.client.post(
                self.config.endpoint,
                json=payload,
                params=params,
                headers=headers,
                timeout=self.config.timeout_s,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UpstreamSynthesisError(
                _error_message(e.response),
                provider=self.name,
                upstream_status=status,
                details={"body": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamSynthesisError(
                f"Falha ao contatar o Google TTS: {type(e).__name__}",
                provider=self.name,
                details={"error": str(e)},
            ) from e

        try:
            audio_b64 = response.json()["audioContent"]
            audio = base64.b64decode(audio_b64, validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise UpstreamSynthesisError(
                "Resposta inválida do Google TTS",
                provider=self.name,
                upstream_status=response.status_code,
                details={"error": str(e)},
            ) from e

        verbose(_LOG, "google_synth_ok", voice=payload["voice"]["name"], bytes=len(audio))
        return audio

    def _auth(self) -> tuple[Dict[str, str], Dict[str, str]]:
        """Query params and headers carrying the configured credential."""
        if self.config.api_key:
            return {"key": self.config.api_key}, {}
        if self.config.access_token:
            return {}, {"Authorization": f"Bearer {self.config.access_token}"}
        if self.config.credentials_file:
            return {}, {"Authorization": f"Bearer {self._service_account_token()}"}
        raise UpstreamSynthesisError("Credenciais do Google não configuradas", provider=self.name)

    def _service_account_token(self) -> str:
        with self._lock:
            try:
                if self._credentials is None:
                    self._credentials = service_account.Credentials.from_service_account_file(
                        self.config.credentials_file, scopes=SCOPES
                    )
                if not self._credentials.valid:
                    debug(_LOG, "google_token_refresh")
                    self._credentials.refresh(GoogleAuthRequest())
            except (OSError, ValueError, google.auth.exceptions.GoogleAuthError) as e:
                raise UpstreamSynthesisError(
                    "Falha na autenticação com o Google",
                    provider=self.name,
                    details={"error": str(e)},
                ) from e
            return self._credentials.token

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None


def _error_message(response: httpx.Response) -> str:
    """Pull `error.message` out of a Google error body, if there is one."""
    try:
        body = response.json()
        message = body.get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return message or f"Google TTS respondeu {response.status_code}"
