from __future__ import annotations

import json

import pytest

from app.services.providers.cloudflare_workers_ai import (
    ASR_PLACEHOLDER,
    CloudflareWorkersAIAdapter,
    format_transcript,
)
from app.services.providers.errors import UpstreamLogicalError
from app.services.providers.types import AdapterRequest, ChatMessage, ContentItem, ModelCapabilities

BASE_URL = "https://api.cloudflare.test/client/v4/accounts/acc/ai"


async def collect(stream) -> list[dict]:
    return [chunk.to_dict() async for chunk in stream]


def make_request(text="hello", *, model="@cf/meta/llama-3.1-8b-instruct", capabilities=None, content=None):
    return AdapterRequest(
        messages=[ChatMessage(role="user", content=content if content is not None else text)],
        model=model,
        base_url=BASE_URL,
        api_key="cf-key",
        capabilities=capabilities,
    )


def test_format_transcript_with_segments():
    result = {
        "text": "hello world again",
        "segments": [
            {"text": " hello world", "words": [{"start": 0.0, "end": 0.4}, {"start": 0.5, "end": 1.2}]},
            {"text": " again", "words": [{"start": 1.5, "end": 2.25}]},
        ],
    }

    assert format_transcript(result) == (
        "**[0.00 → 2.25]** hello world again\n"
        "\n"
        "**[0.00 → 1.20]** hello world\n"
        "**[1.50 → 2.25]** again"
    )


def test_format_transcript_without_segments_is_plain_text():
    assert format_transcript({"text": " just text "}) == "just text"


@pytest.mark.asyncio
async def test_tts_runs_model_and_never_calls_chat(fake_upstream):
    fake_upstream.reply_json({"success": True, "result": {"audio": "UklGRgAAAAA="}, "errors": []})
    request = make_request("Read me", model="@cf/myshell-ai/melotts", capabilities=ModelCapabilities(tts=True))

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(request))

    assert chunks == [
        {"type": "audio", "content": "data:audio/wav;base64,UklGRgAAAAA=", "mimeType": "audio/wav"},
        {"type": "done"},
    ]
    assert len(fake_upstream.requests) == 1
    sent = fake_upstream.last_request
    assert str(sent.url) == f"{BASE_URL}/run/@cf/myshell-ai/melotts"
    assert sent.headers["authorization"] == "Bearer cf-key"
    assert fake_upstream.json_body() == {"prompt": "Read me"}


@pytest.mark.asyncio
async def test_success_false_is_error_even_with_http_200(fake_upstream):
    fake_upstream.reply_json({"success": False, "errors": [{"code": 5006, "message": "model not found"}], "result": None})
    request = make_request("x", model="@cf/myshell-ai/melotts", capabilities=ModelCapabilities(tts=True))

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(request))

    assert chunks == [{"type": "error", "error": "TTS API Error: model not found"}]


@pytest.mark.asyncio
async def test_tts_non_stream_raises_logical_error(fake_upstream):
    fake_upstream.reply_json({"success": True, "result": {}})
    request = make_request("x", capabilities=ModelCapabilities(tts=True))

    with pytest.raises(UpstreamLogicalError):
        await CloudflareWorkersAIAdapter().chat(request)


@pytest.mark.asyncio
async def test_asr_without_audio_returns_placeholder(fake_upstream):
    result = await CloudflareWorkersAIAdapter().chat(make_request("hi", capabilities=ModelCapabilities(asr=True)))

    assert result.content == ASR_PLACEHOLDER
    assert fake_upstream.requests == []


@pytest.mark.asyncio
async def test_stt_transcribes_embedded_audio(fake_upstream):
    fake_upstream.reply_json(
        {
            "success": True,
            "result": {
                "text": "good morning",
                "segments": [{"text": "good morning", "words": [{"start": 0.1, "end": 0.9}]}],
            },
        }
    )
    content = [ContentItem(type="audio", url="data:audio/mpeg;base64,SUQzBA==", mime_type="audio/mpeg")]
    request = make_request(model="@cf/openai/whisper", capabilities=ModelCapabilities(stt=True), content=content)

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(request))

    assert fake_upstream.json_body() == {"audio": "SUQzBA=="}
    assert chunks == [
        {"type": "text", "content": "**[0.00 → 0.90]** good morning\n\n**[0.10 → 0.90]** good morning"},
        {"type": "done"},
    ]


@pytest.mark.asyncio
async def test_text_to_image_sends_multipart_fields(fake_upstream):
    fake_upstream.reply_json({"success": True, "result": {"image": "iVBORw0KGgo="}})
    request = make_request(
        "a red fox", model="@cf/black-forest-labs/flux-1-schnell", capabilities=ModelCapabilities(image_output=True)
    )

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(request))

    sent = fake_upstream.last_request
    assert sent.headers["content-type"].startswith("multipart/form-data")
    body = sent.content
    assert b'name="prompt"' in body and b"a red fox" in body
    assert b'name="num_steps"' in body
    assert b'name="guidance"' in body
    assert b'name="image"' not in body
    assert chunks == [{"type": "image", "imageUrl": "data:image/png;base64,iVBORw0KGgo="}, {"type": "done"}]


@pytest.mark.asyncio
async def test_image_to_image_attaches_source_image(fake_upstream):
    fake_upstream.reply_json({"success": True, "result": {"image": "iVBORw0KGgo="}})
    content = [
        ContentItem(type="text", text="make it blue"),
        ContentItem(type="image", url="data:image/jpeg;base64,/9j/AA==", file_name="car.jpg"),
    ]
    request = make_request(
        model="@cf/runwayml/stable-diffusion-v1-5-img2img",
        capabilities=ModelCapabilities(image_output=True),
        content=content,
    )

    result = await CloudflareWorkersAIAdapter().chat(request)

    body = fake_upstream.last_request.content
    assert b'name="strength"' in body
    assert b'name="image"; filename="car.jpg"' in body
    assert b"Content-Type: image/jpeg" in body
    assert result.images == ["data:image/png;base64,iVBORw0KGgo="]


@pytest.mark.asyncio
async def test_chat_goes_through_openai_compatible_endpoint(fake_upstream):
    fake_upstream.reply_sse(
        [
            f"data: {json.dumps({'choices': [{'delta': {'content': 'Hey'}}]})}\n\n",
            "data: [DONE]\n\n",
        ]
    )

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(make_request()))

    assert str(fake_upstream.last_request.url) == f"{BASE_URL}/v1/chat/completions"
    assert fake_upstream.json_body()["model"] == "@cf/meta/llama-3.1-8b-instruct"
    assert chunks == [{"type": "text", "content": "Hey"}, {"type": "done"}]


@pytest.mark.asyncio
async def test_closing_chat_stream_early_releases_upstream_body(fake_upstream):
    body = fake_upstream.reply_sse(
        [f"data: {json.dumps({'choices': [{'delta': {'content': str(i)}}]})}\n\n" for i in range(5)]
        + ["data: [DONE]\n\n"]
    )

    stream = CloudflareWorkersAIAdapter().chat_stream(make_request())
    first = await stream.__anext__()
    await stream.aclose()

    assert first.content == "0"
    assert body.closed is True
    assert body.served < 6


def test_format_transcript_skips_words_that_are_not_objects():
    result = {
        "text": "hi there",
        "segments": [
            {"text": "hi", "words": [[0, 1]]},
            {"text": "there", "words": [{"start": "bad", "end": 1.5}, [2, 3]]},
        ],
    }

    assert format_transcript(result) == (
        "**[0.00 → 1.50]** hi there\n"
        "\n"
        "**[0.00 → 1.50]** there"
    )


@pytest.mark.asyncio
async def test_asr_with_malformed_words_still_streams_text(fake_upstream):
    fake_upstream.reply_json(
        {"success": True, "result": {"text": "hello", "segments": [{"text": "hello", "words": [[0, 1]]}]}}
    )
    content = [ContentItem(type="audio", url="data:audio/wav;base64,UklGRg==", mime_type="audio/wav")]
    request = make_request(model="@cf/openai/whisper", capabilities=ModelCapabilities(asr=True), content=content)

    chunks = await collect(CloudflareWorkersAIAdapter().chat_stream(request))

    assert chunks == [{"type": "text", "content": "**[0.00 → 0.00]** hello"}, {"type": "done"}]
