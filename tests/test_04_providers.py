"""Tests for the Google and Polly providers with mocked transports."""
from __future__ import annotations

import base64
import io
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from readtext_ms.core.config import GoogleConfig, PollyConfig, ReadTextConfig
from readtext_ms.core.errors import UpstreamSynthesisError
from readtext_ms.tts.provider import create_provider
from readtext_ms.tts.providers.google import GoogleProvider
from readtext_ms.tts.providers.polly import PollyProvider


def _google(handler, **config_kwargs) -> GoogleProvider:
    config_kwargs.setdefault("api_key", "test-key")
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GoogleProvider(GoogleConfig(**config_kwargs), client=client)


class TestGoogleProvider:

    def test_synthesize_posts_payload_and_decodes_audio(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"mp3-bytes").decode()})

        audio = _google(handler).synthesize("Olá mundo", "pt-BR", "female")

        assert audio == b"mp3-bytes"
        assert seen["url"].params["key"] == "test-key"
        assert seen["body"] == {
            "input": {"text": "Olá mundo"},
            "voice": {"languageCode": "pt-BR", "name": "pt-BR-Neural2-A"},
            "audioConfig": {"audioEncoding": "MP3"},
        }

    def test_bearer_token_when_no_api_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"x").decode()})

        _google(handler, api_key=None, access_token="ya29.token").synthesize("Oi", "pt-BR")
        assert seen["auth"] == "Bearer ya29.token"
        assert "key" not in seen["params"]

    def test_http_error_carries_google_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"code": 400, "message": "Voice does not exist"}})

        with pytest.raises(UpstreamSynthesisError) as exc_info:
            _google(handler).synthesize("Oi", "pt-BR", "pt-BR-Nope")
        err = exc_info.value
        assert err.message == "Voice does not exist"
        assert err.upstream_status == 400
        assert err.provider == "google"
        assert err.status_code == 500

    def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(UpstreamSynthesisError) as exc_info:
            _google(handler).synthesize("Oi", "pt-BR")
        assert exc_info.value.upstream_status is None

    def test_malformed_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(UpstreamSynthesisError, match="inválida"):
            _google(handler).synthesize("Oi", "pt-BR")

    def test_no_credentials(self):
        provider = _google(lambda r: httpx.Response(200), api_key=None)
        assert provider.is_configured() is False
        with pytest.raises(UpstreamSynthesisError, match="Credenciais"):
            provider.synthesize("Oi", "pt-BR")

    def test_service_account_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"x").decode()})

        creds = MagicMock()
        creds.valid = False
        creds.token = "sa-token"
        target = "readtext_ms.tts.providers.google.service_account.Credentials.from_service_account_file"
        with patch(target, return_value=creds) as from_file:
            provider = _google(handler, api_key=None, credentials_file="/secrets/sa.json")
            provider.synthesize("Oi", "pt-BR")

        from_file.assert_called_once()
        creds.refresh.assert_called_once()
        assert seen["auth"] == "Bearer sa-token"

    def test_voice_mapping_and_fallback(self):
        provider = GoogleProvider(GoogleConfig(voice_mapping={"narrator": "pt-BR-Wavenet-B"}))
        assert provider.resolve_voice("narrator") == "pt-BR-Wavenet-B"
        assert provider.resolve_voice("CAMILA") == "pt-BR-Neural2-A"
        assert provider.resolve_voice("unknown") == provider.default_voice
        assert provider.resolve_voice(None) == provider.default_voice

    def test_linear16_encoding(self):
        provider = GoogleProvider(GoogleConfig(audio_encoding="LINEAR16"))
        payload = provider.build_payload("Oi", "pt-BR", None)
        assert payload["audioConfig"] == {"audioEncoding": "LINEAR16"}


class TestPollyProvider:

    def test_synthesize_reads_stream(self):
        client = MagicMock()
        client.synthesize_speech.return_value = {"AudioStream": io.BytesIO(b"polly-mp3")}
        provider = PollyProvider(PollyConfig(), client=client)

        audio = provider.synthesize("Olá", "pt-BR", "female")

        assert audio == b"polly-mp3"
        client.synthesize_speech.assert_called_once_with(
            Text="Olá",
            OutputFormat="mp3",
            VoiceId="Camila",
            LanguageCode="pt-BR",
            Engine="standard",
        )

    def test_google_voice_name_maps_to_polly(self):
        provider = PollyProvider(PollyConfig(), client=MagicMock())
        assert provider.resolve_voice("pt-BR-Neural2-B") == "Ricardo"

    def test_client_error(self):
        client = MagicMock()
        client.synthesize_speech.side_effect = ClientError(
            {
                "Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"},
                "ResponseMetadata": {"HTTPStatusCode": 400},
            },
            "SynthesizeSpeech",
        )
        provider = PollyProvider(PollyConfig(), client=client)

        with pytest.raises(UpstreamSynthesisError) as exc_info:
            provider.synthesize("Olá", "pt-BR")
        assert exc_info.value.message == "Rate exceeded"
        assert exc_info.value.upstream_status == 400
        assert exc_info.value.provider == "polly"

    def test_connection_error(self):
        client = MagicMock()
        client.synthesize_speech.side_effect = EndpointConnectionError(endpoint_url="https://polly")
        provider = PollyProvider(PollyConfig(), client=client)

        with pytest.raises(UpstreamSynthesisError, match="EndpointConnectionError"):
            provider.synthesize("Olá", "pt-BR")

    def test_missing_stream(self):
        client = MagicMock()
        client.synthesize_speech.return_value = {}
        with pytest.raises(UpstreamSynthesisError):
            PollyProvider(PollyConfig(), client=client).synthesize("Olá", "pt-BR")

    def test_injected_client_counts_as_configured(self):
        assert PollyProvider(PollyConfig(), client=MagicMock()).is_configured() is True

    def test_credential_lookup_runs_once(self):
        provider = PollyProvider(PollyConfig())
        with patch("readtext_ms.tts.providers.polly.boto3.Session") as session_cls:
            session_cls.return_value.get_credentials.return_value = None
            assert provider.is_configured() is False
            assert provider.is_configured() is False
        session_cls.assert_called_once()


class TestCreateProvider:

    def test_known_providers(self):
        config = ReadTextConfig()
        assert isinstance(create_provider("google", config), GoogleProvider)
        assert isinstance(create_provider("polly", config), PollyProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_provider("azure", ReadTextConfig())
