"""Unit tests for outbound media tag handling."""

import os
import time

import pytest

from parley.gateway.media import (
    DEFAULT_CAPTION,
    REJECTED_MISSING,
    REJECTED_OUTSIDE,
    REJECTED_STALE,
    MediaDispatch,
    MediaRejected,
    extract_media_tag,
    prepare_reply,
    validate_local_media,
)


@pytest.fixture
def downloads(tmp_path):
    path = tmp_path / "downloads"
    (path / "image").mkdir(parents=True)
    return path


def _fresh_file(downloads, name="cat.png"):
    path = downloads / "image" / name
    path.write_bytes(b"\x89PNG")
    return path


class TestExtractMediaTag:
    def test_no_tag(self):
        assert extract_media_tag("Just text") == ("Just text", None)

    def test_tag_removed(self):
        text, media = extract_media_tag("Here it is: [MEDIA_SEND:https://x.test/a.png|image] enjoy")
        assert text == "Here it is:  enjoy"
        assert media == MediaDispatch(location="https://x.test/a.png", media_type="image")
        assert media.is_remote

    def test_local_path_not_remote(self):
        _, media = extract_media_tag("[MEDIA_SEND:/data/downloads/a.png|image]")
        assert media.is_remote is False


class TestValidateLocalMedia:
    def test_fresh_file_inside_downloads(self, downloads):
        path = _fresh_file(downloads)
        assert validate_local_media(str(path), downloads, 300) == path.resolve()

    def test_traversal_blocked(self, downloads, tmp_path):
        outside = tmp_path / "secret.txt"
        outside.write_text("nope")
        sneaky = downloads / "image" / ".." / ".." / "secret.txt"
        with pytest.raises(MediaRejected, match=REJECTED_OUTSIDE):
            validate_local_media(str(sneaky), downloads, 300)

    def test_stale_file_blocked(self, downloads):
        path = _fresh_file(downloads)
        old = time.time() - 600
        os.utime(path, (old, old))
        with pytest.raises(MediaRejected) as exc_info:
            validate_local_media(str(path), downloads, 300)
        assert str(exc_info.value) == REJECTED_STALE

    def test_missing_file(self, downloads):
        with pytest.raises(MediaRejected) as exc_info:
            validate_local_media(str(downloads / "image" / "gone.png"), downloads, 300)
        assert str(exc_info.value) == REJECTED_MISSING


class TestPrepareReply:
    def test_plain_text_untouched(self, downloads):
        reply = prepare_reply("Hello!", downloads, 300)
        assert reply.text == "Hello!"
        assert reply.media is None

    def test_caption_defaults_when_only_tag(self, downloads):
        path = _fresh_file(downloads)
        reply = prepare_reply(f"[MEDIA_SEND:{path}|image]", downloads, 300)
        assert reply.text == DEFAULT_CAPTION
        assert reply.media.location == str(path)

    def test_rejection_replaces_reply(self, downloads):
        reply = prepare_reply("Look! [MEDIA_SEND:/etc/passwd|document]", downloads, 300)
        assert reply.text == REJECTED_OUTSIDE
        assert reply.media is None

    def test_remote_media_skips_validation(self, downloads):
        reply = prepare_reply("Song [MEDIA_SEND:https://x.test/a.mp3|audio]", downloads, 300)
        assert reply.text == "Song"
        assert reply.media.media_type == "audio"
