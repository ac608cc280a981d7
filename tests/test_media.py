from __future__ import annotations

import pytest

from cards import errors, media

pytestmark = pytest.mark.anyio


async def test_upload_returns_durable_url(uploader):
    url = await media.upload(b"portrait", "cards/brides")

    assert url == "https://cdn.test/cards/brides/portrait"
    assert uploader.calls == [("cards/brides", "image", b"portrait")]


async def test_audio_kind_uses_video_resource_type(uploader):
    await media.upload(b"song", "cards/audio", "audio")

    assert uploader.calls == [("cards/audio", "video", b"song")]


@pytest.mark.parametrize(
    ("buffer", "folder", "kind"),
    [(b"", "cards/brides", "image"), (b"x", "  ", "image"), (b"x", "cards/brides", "document")],
)
async def test_invalid_input_fails_without_calling_store(uploader, buffer, folder, kind):
    with pytest.raises(errors.UploadFailure):
        await media.upload(buffer, folder, kind)

    assert uploader.calls == []


async def test_store_error_becomes_upload_failure(uploader):
    uploader.failing_folders.add("cards/brides")

    with pytest.raises(errors.UploadFailure, match="Cloudinary upload failed"):
        await media.upload(b"portrait", "cards/brides")


async def test_upload_all_keeps_input_order_regardless_of_completion(uploader):
    buffers = [b"one", b"two", b"three"]
    uploader.delays = {b"one": 0.03, b"two": 0.02, b"three": 0.0}

    urls = await media.upload_all(buffers, "cards/gallery")

    assert uploader.completed == [b"three", b"two", b"one"]
    assert urls == [
        "https://cdn.test/cards/gallery/one",
        "https://cdn.test/cards/gallery/two",
        "https://cdn.test/cards/gallery/three",
    ]


async def test_upload_all_reports_failures_in_place(uploader):
    uploader.failing_payloads.add(b"two")

    results = await media.upload_all([b"one", b"two", b"three"], "cards/gallery")

    assert results[0] == "https://cdn.test/cards/gallery/one"
    assert isinstance(results[1], errors.UploadFailure)
    assert results[2] == "https://cdn.test/cards/gallery/three"


async def test_folders_come_from_environment(monkeypatch):
    monkeypatch.setenv("PHOTO_GALLERY_FOLDER", "prod/gallery")
    monkeypatch.setenv("AUDIO_FILES_FOLDER", "   ")

    assert media.photo_gallery_folder() == "prod/gallery"
    assert media.audio_files_folder() == "wedding-cards/audio-files"
