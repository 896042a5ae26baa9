import re

import pytest

from errors import StateConflict, UploadError, ValidationError
from storage import MAX_DESIGN_BYTES, DesignUploader, design_path, read_limited

pytestmark = pytest.mark.anyio

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_design_path_is_time_prefixed_with_random_suffix():
    a = design_path("My Design.PNG", now_ms=1700000000000)
    b = design_path("My Design.PNG", now_ms=1700000000000)
    assert re.fullmatch(r"custom-designs/1700000000000-[0-9a-f]{12}\.png", a)
    assert a != b


def test_design_path_without_extension():
    assert design_path("logo", prefix="products").endswith(".bin")


async def test_upload_returns_public_url(storage):
    url = await DesignUploader(storage).upload("logo.png", "image/png", PNG)
    assert url.startswith("https://cdn.example.com/custom-designs/")
    assert url.endswith(".png")
    assert len(storage.objects) == 1


async def test_oversized_file_is_rejected_before_storage(storage):
    six_mib = b"\x00" * (6 * 1024 * 1024)
    with pytest.raises(ValidationError, match="less than 5MB"):
        await DesignUploader(storage).upload("big.png", "image/png", six_mib)
    assert storage.calls == 0


async def test_exactly_five_mib_is_accepted(storage):
    await DesignUploader(storage).upload("edge.png", "image/png", b"\x00" * MAX_DESIGN_BYTES)
    assert storage.calls == 1


async def test_non_images_are_rejected(storage):
    with pytest.raises(ValidationError):
        await DesignUploader(storage).upload("notes.pdf", "application/pdf", b"%PDF-1.7")
    assert storage.calls == 0


async def test_storage_failure_becomes_upload_error(storage):
    storage.fail = True
    with pytest.raises(UploadError):
        await DesignUploader(storage).upload("logo.png", "image/png", PNG)


async def test_session_keeps_previous_design_when_upload_fails(make_session, storage):
    session = make_session()
    first = await session.upload_design("first.png", "image/png", PNG)
    storage.fail = True
    with pytest.raises(UploadError):
        await session.upload_design("second.png", "image/png", PNG)
    assert session.customizer.selection.design_url == first
    assert session.design_uploading is False


async def test_second_upload_while_one_is_in_flight_is_refused(make_session, storage):
    session = make_session()
    session.design_uploading = True
    with pytest.raises(StateConflict):
        await session.upload_design("logo.png", "image/png", PNG)
    assert storage.calls == 0
    assert session.customizer.selection.design_url is None


def test_design_path_falls_back_for_unsafe_extensions():
    assert design_path("x.png/../y").endswith(".bin")
    assert design_path("photo.jpeg-large").endswith(".bin")
    assert re.fullmatch(r"custom-designs/\d+-[0-9a-f]{12}\.webp", design_path("art.WEBP"))


class FakeUpload:
    def __init__(self, data, size=None):
        self.data = data
        self.size = size
        self.requested = []

    async def read(self, n=-1):
        self.requested.append(n)
        return self.data if n < 0 else self.data[:n]


async def test_read_limited_rejects_declared_size_without_reading():
    upload = FakeUpload(b"\x00" * 10, size=6 * 1024 * 1024)
    with pytest.raises(ValidationError, match="less than 5MB"):
        await read_limited(upload)
    assert upload.requested == []


async def test_read_limited_stops_one_byte_past_the_limit():
    upload = FakeUpload(b"\x00" * 100)
    with pytest.raises(ValidationError):
        await read_limited(upload, max_bytes=10)
    assert upload.requested == [11]
    assert await read_limited(FakeUpload(PNG), max_bytes=len(PNG)) == PNG
