"""Tests for the HTTP stage clients (httpx MockTransport)."""

import json

import httpx
import pytest

from frameops.models.errors import StageError, StageErrorKind
from frameops.models.frames import ExtractionConfig
from frameops.stages.frame_extractor import FrameExtractorClient
from frameops.stages.frame_matcher import FrameMatcherClient, MatchInput
from frameops.stages.health import ServiceHealthProbe
from frameops.stages.transcriber import TranscriberClient
from tests.conftest import make_frames, mock_http_client, raw_frames

BASE = "http://services.test"


def respond(status: int = 200, body: object = None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    return handler


def extractor(handler) -> FrameExtractorClient:
    return FrameExtractorClient(BASE, 30.0, http_client=mock_http_client(handler))


class TestFrameExtractor:
    def test_upload_sent_as_multipart(self, upload_source):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.content
            return httpx.Response(200, json={"success": True, "frames": raw_frames(3)})

        frames = extractor(handler).invoke(upload_source, ExtractionConfig())
        assert seen["path"] == "/extract-frames-scene-detect"
        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="video"' in seen["body"]
        assert b'name="skipWhisper"' in seen["body"]
        assert len(frames) == 3

    def test_remote_sent_as_json(self, remote_source):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "frames": raw_frames(2)})

        config = ExtractionConfig(scene_threshold=0.45, min_frames=6, max_frames=12)
        extractor(handler).invoke(remote_source, config)
        assert seen["json"]["youtubeUrl"] == remote_source.reference
        assert seen["json"]["sceneThreshold"] == 0.45
        assert seen["json"]["maxFrames"] == 12
        assert seen["json"]["minFrames"] == 6

    def test_frames_sorted_deduplicated_and_reindexed(self, upload_source):
        raw = raw_frames(4)
        shuffled = [raw[2], raw[0], raw[3], raw[1], raw[2]]
        handler = respond(body={"success": True, "frames": shuffled})
        frames = extractor(handler).invoke(upload_source)
        assert [f.index for f in frames] == [0, 1, 2, 3]
        assert [f.timestamp_seconds for f in frames] == [0.0, 5.0, 10.0, 15.0]
        assert not frames[0].image_base64.startswith("data:")

    def test_over_delivery_clamped_to_max(self, upload_source):
        handler = respond(body={"success": True, "frames": raw_frames(40)})
        config = ExtractionConfig(min_frames=2, max_frames=10)
        frames = extractor(handler).invoke(upload_source, config)
        assert len(frames) == 10
        assert frames[0].timestamp_seconds == 0.0
        assert frames[-1].timestamp_seconds == 39 * 5.0
        assert all(a.timestamp_seconds < b.timestamp_seconds for a, b in zip(frames, frames[1:]))

    def test_short_source_under_min_accepted(self, upload_source):
        handler = respond(body={"success": True, "frames": raw_frames(2)})
        frames = extractor(handler).invoke(upload_source, ExtractionConfig())
        assert len(frames) == 2

    def test_malformed_frames_skipped(self, upload_source):
        body = {"success": True, "frames": [{"timestamp": "x"}, "junk", *raw_frames(1)]}
        frames = extractor(respond(body=body)).invoke(upload_source)
        assert len(frames) == 1

    def test_out_of_order_sequence_rejected(self, upload_source, monkeypatch):
        client = extractor(respond(body={"success": True, "frames": raw_frames(3)}))
        monkeypatch.setattr(client, "clamp_frames", lambda frames, config: frames[::-1])
        with pytest.raises(StageError, match="strictly increasing") as exc_info:
            client.invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.BAD_RESPONSE

    def test_zero_frames_is_bad_response(self, upload_source):
        handler = respond(body={"success": True, "frames": []})
        with pytest.raises(StageError) as exc_info:
            extractor(handler).invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.BAD_RESPONSE

    @pytest.mark.parametrize(
        "status,kind",
        [
            (504, StageErrorKind.TIMEOUT),
            (408, StageErrorKind.TIMEOUT),
            (502, StageErrorKind.SERVICE_UNAVAILABLE),
            (503, StageErrorKind.SERVICE_UNAVAILABLE),
            (500, StageErrorKind.BAD_RESPONSE),
            (400, StageErrorKind.BAD_RESPONSE),
        ],
    )
    def test_status_classification(self, upload_source, status, kind):
        with pytest.raises(StageError) as exc_info:
            extractor(respond(status, {"error": "x"})).invoke(upload_source)
        assert exc_info.value.kind == kind
        assert exc_info.value.stage == "frame_extraction"

    def test_transport_timeout(self, upload_source):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(StageError) as exc_info:
            extractor(handler).invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.TIMEOUT

    def test_connection_refused(self, upload_source):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(StageError) as exc_info:
            extractor(handler).invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.SERVICE_UNAVAILABLE

    def test_success_false(self, upload_source):
        handler = respond(body={"success": False, "error": "ffmpeg crashed"})
        with pytest.raises(StageError, match="ffmpeg crashed") as exc_info:
            extractor(handler).invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.BAD_RESPONSE

    def test_non_json_body(self, upload_source):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(StageError) as exc_info:
            extractor(handler).invoke(upload_source)
        assert exc_info.value.kind == StageErrorKind.BAD_RESPONSE


class TestTranscriber:
    def client(self, handler) -> TranscriberClient:
        return TranscriberClient(BASE, 30.0, http_client=mock_http_client(handler))

    def test_transcript_with_segments(self, upload_source):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "transcript": "Remove the cover.",
                    "segments": [{"start": 0.0, "end": 2.5, "text": " Remove the cover. "}],
                    "source": "whisper",
                },
            )

        transcript = self.client(handler).invoke(upload_source)
        assert seen["path"] == "/whisper-transcribe-video"
        assert transcript.text == "Remove the cover."
        assert transcript.segments[0].text == "Remove the cover."
        assert transcript.source == "whisper"
        assert transcript.fallback_reason is None

    def test_remote_uses_youtube_endpoint(self, remote_source):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "transcript": "hello"})

        self.client(handler).invoke(remote_source)
        assert seen["path"] == "/whisper-transcribe-youtube"
        assert seen["json"]["youtubeUrl"] == remote_source.reference

    def test_text_rebuilt_from_segments(self, upload_source):
        body = {
            "success": True,
            "segments": [
                {"start": 0, "end": 1, "text": "one"},
                {"start": 1, "end": 2, "text": "two"},
            ],
        }
        transcript = self.client(respond(body=body)).invoke(upload_source)
        assert transcript.text == "one two"

    def test_no_speech_is_empty_not_error(self, upload_source):
        transcript = self.client(respond(body={"success": True, "transcript": ""})).invoke(
            upload_source
        )
        assert transcript.is_empty
        assert transcript.fallback_reason == "no speech detected"

    @pytest.mark.parametrize(
        "status,reason",
        [(504, "timeout"), (503, "service_unavailable"), (500, "bad_response")],
    )
    def test_failures_become_empty_transcript(self, upload_source, status, reason):
        transcript = self.client(respond(status, {})).invoke(upload_source)
        assert transcript.is_empty
        assert transcript.fallback_reason == reason


class TestFrameMatcher:
    def client(self, handler) -> FrameMatcherClient:
        return FrameMatcherClient(BASE, 30.0, http_client=mock_http_client(handler), top_k=3)

    def test_candidates_parsed(self):
        seen = {}

        def handler(request):
            seen["json"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "result": [
                        {
                            "stepIndex": 0,
                            "candidates": [
                                {"candidateIndex": 2, "score": 0.8},
                                {"candidateIndex": 1, "score": 0.4},
                            ],
                        },
                        {"stepIndex": 1, "chosen": {"candidateIndex": 3, "score": 0.7}},
                        {"stepIndex": 2, "text": "step", "chosen": None},
                    ],
                },
            )

        matches = self.client(handler).invoke(
            MatchInput(frames=make_frames(4), step_texts=["a", "b", "c"])
        )
        assert seen["json"]["topK"] == 3
        assert seen["json"]["steps"] == ["a", "b", "c"]
        assert len(seen["json"]["frames"]) == 4
        assert [c.frame_index for c in matches[0].candidates] == [2, 1]
        assert matches[1].candidates[0].frame_index == 3
        assert matches[2].candidates == []

    def test_missing_result_is_bad_response(self):
        with pytest.raises(StageError) as exc_info:
            self.client(respond(body={"success": True})).invoke(
                MatchInput(frames=make_frames(2), step_texts=["a"])
            )
        assert exc_info.value.kind == StageErrorKind.BAD_RESPONSE


class TestHealthProbe:
    def test_healthy(self):
        probe = ServiceHealthProbe(BASE, http_client=mock_http_client(respond(body={"ok": 1})))
        assert probe.check() is True

    def test_unhealthy_status(self):
        probe = ServiceHealthProbe(BASE, http_client=mock_http_client(respond(503, {})))
        assert probe.check() is False

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert ServiceHealthProbe(BASE, http_client=mock_http_client(handler)).check() is False

    def test_from_settings_uses_fixed_timeout(self, test_settings):
        probe = ServiceHealthProbe.from_settings(test_settings)
        assert probe.timeout == 5.0
        assert probe.base_url == "http://services.test"

    def test_close_leaves_injected_client_open(self):
        http = mock_http_client(respond(body={"ok": 1}))
        with ServiceHealthProbe(BASE, http_client=http) as probe:
            assert probe.check() is True
        assert not http.is_closed

    def test_close_releases_own_client(self):
        probe = ServiceHealthProbe(BASE)
        probe.close()
        assert probe.http_client.is_closed
