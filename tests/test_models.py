"""
Unit tests for CamPush data models.

Tests cover identity key derivation, slug sanitization, control command
parsing and source serialization.
"""

import pytest

from campush.models import (
    CommandAction,
    ControlCommand,
    PublisherIdentity,
    Source,
    SourceKind,
    config_key,
    default_title,
    generate_client_id,
    sanitize_slug,
)


class TestSanitizeSlug:
    """Test cases for sanitize_slug."""

    def test_lowercases_and_collapses_invalid_runs(self):
        assert sanitize_slug("  USB Cam (HD) #2 ") == "usb-cam-hd-2"

    def test_keeps_dots_underscores_and_dashes(self):
        assert sanitize_slug("a.b_c-d") == "a.b_c-d"

    def test_strips_edge_dashes(self):
        assert sanitize_slug("--cam--") == "cam"

    def test_empty_becomes_stream(self):
        assert sanitize_slug("") == "stream"
        assert sanitize_slug("!!!") == "stream"


class TestConfigKey:
    """Test cases for the stable identity key."""

    def test_video_key_from_label(self):
        assert config_key(SourceKind.VIDEO, "cam1", "/dev/video0") == "video-cam1"

    def test_key_ignores_device_id_when_label_present(self):
        first = config_key(SourceKind.VIDEO, "Logitech C920", "/dev/video0")
        second = config_key(SourceKind.VIDEO, "Logitech C920", "/dev/video4")
        assert first == second == "video-logitech-c920"

    def test_audio_default_prefix_removed(self):
        assert config_key(SourceKind.AUDIO, "Default - USB Mic", "hw:1") == "audio-usb-mic"
        assert config_key(SourceKind.AUDIO, "USB Mic", "hw:2") == "audio-usb-mic"

    def test_audio_localized_default_prefix_removed(self):
        assert config_key(SourceKind.AUDIO, "默认 - USB Mic", "hw:1") == "audio-usb-mic"

    def test_video_default_prefix_kept(self):
        assert config_key(SourceKind.VIDEO, "Default - Cam", "/dev/video0") == "video-default-cam"

    def test_empty_label_falls_back_to_device_id(self):
        assert config_key(SourceKind.VIDEO, "  ", "ABC:123") == "video-abc-123"

    def test_audio_prefix_only_falls_back_to_device_id(self):
        assert config_key(SourceKind.AUDIO, "Default - ", "hw:3") == "audio-hw-3"


class TestControlCommand:
    """Test cases for control command parsing."""

    def test_start_with_path(self):
        command = ControlCommand.from_payload({"action": "start", "stream_id": "s1", "path": "live/a"})
        assert command == ControlCommand(CommandAction.START, "s1", "live/a")

    def test_stop_without_path(self):
        command = ControlCommand.from_payload({"action": "stop", "stream_id": "s1"})
        assert command.action == CommandAction.STOP
        assert command.path is None

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"action": "pause", "stream_id": "s1"},
        {"action": "start"},
        {"action": "start", "stream_id": ""},
        {"action": "start", "stream_id": 7},
        {"action": "start", "stream_id": "s1", "path": 3},
    ])
    def test_malformed_payload_returns_none(self, payload):
        assert ControlCommand.from_payload(payload) is None


class TestSource:
    """Test cases for the Source model."""

    def test_media_follows_kind(self):
        video = Source("video-a", "/dev/video0", "a", SourceKind.VIDEO, "video-a", "t")
        audio = Source("audio-b", "hw:0", "b", SourceKind.AUDIO, "audio-b", "t")
        assert video.media == "video"
        assert audio.media == "audio"

    def test_dict_round_trip(self):
        source = Source(
            id="video-cam1",
            device_id="/dev/video0",
            label="cam1",
            kind=SourceKind.VIDEO,
            name="video-cam1",
            title="Alice / cam1",
            enabled=True,
            stream_id="s1",
            path="live/video-cam1",
        )
        data = source.to_dict()
        assert data["kind"] == "video"
        assert Source.from_dict(data) == source

    def test_from_dict_defaults_name_to_id(self):
        source = Source.from_dict({"id": "audio-mic", "kind": "audio"})
        assert source.name == "audio-mic"
        assert source.enabled is False

    def test_from_dict_rejects_unknown_kind(self):
        with pytest.raises(ValueError):
            Source.from_dict({"id": "x", "kind": "screen"})


class TestIdentity:
    """Test cases for publisher identity helpers."""

    def test_clear_keeps_client_id(self):
        identity = PublisherIdentity("pub-1", "tok-1", "pc-abc")
        assert identity.is_registered
        identity.clear()
        assert not identity.is_registered
        assert identity.publisher_id == ""
        assert identity.client_id == "pc-abc"

    def test_generate_client_id_format(self):
        client_id = generate_client_id()
        assert client_id.startswith("pc-")
        assert len(client_id) == 13
        assert client_id != generate_client_id()

    def test_default_title(self):
        assert default_title("Alice", "cam1") == "Alice / cam1"
        assert default_title("  ", "cam1") == "User / cam1"
