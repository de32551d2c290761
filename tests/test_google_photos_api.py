"""Tests for the Google Photos catalog and download helpers."""

import datetime
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest
import requests
from google.auth.exceptions import RefreshError

from photosync.config import MediaType, SyncConfig
from photosync.errors import AuthError, DownloadError, LocalIOError, RemoteRequestError
from photosync.google_photos_api import (
    PAGE_SIZE,
    SEARCH_URL,
    MediaItemCatalog,
    build_search_filters,
    download_media_item,
    download_url,
    parse_creation_time,
)
from photosync.models import RemoteMediaItem


def api_item(n, mime="image/jpeg", creation="2021-05-01T08:00:00Z"):
    return {
        "id": f"id-{n}",
        "baseUrl": f"https://lh3.example/{n}",
        "mimeType": mime,
        "filename": f"IMG_{n}.JPG",
        "mediaMetadata": {"creationTime": creation},
    }


def json_response(payload, status_code=200):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.text = str(payload)
    return resp


def stream_response(chunks, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    resp.iter_content.return_value = iter(chunks)
    return resp


@pytest.fixture
def config():
    return SyncConfig(
        destination_root=Path("/dest"),
        media_type=MediaType.VIDEO,
        start_date=datetime.date(2021, 2, 14),
        end_date=datetime.date(2023, 3, 1),
    )


class TestRemoteMediaItem:
    """Tests for RemoteMediaItem.from_api."""

    def test_photo(self):
        item = RemoteMediaItem.from_api(api_item(1))
        assert item.id == "id-1"
        assert item.filename == "IMG_1.JPG"
        assert item.creation_time == "2021-05-01T08:00:00Z"
        assert not item.is_video

    def test_video_by_mime_type(self):
        item = RemoteMediaItem.from_api(api_item(2, mime="video/mp4"))
        assert item.is_video

    def test_video_by_metadata(self):
        data = api_item(3, mime="application/octet-stream")
        data["mediaMetadata"]["video"] = {"fps": 30}
        assert RemoteMediaItem.from_api(data).is_video

    def test_missing_creation_time(self):
        data = api_item(4)
        del data["mediaMetadata"]
        assert RemoteMediaItem.from_api(data).creation_time is None


class TestSearchFilters:
    """Tests for build_search_filters."""

    def test_media_type_and_dates(self, config):
        filters = build_search_filters(config)
        assert filters["mediaTypeFilter"] == {"mediaTypes": ["VIDEO"]}
        assert filters["dateFilter"] == {
            "ranges": [{
                "startDate": {"year": 2021, "month": 2, "day": 14},
                "endDate": {"year": 2023, "month": 3, "day": 1},
            }]
        }

    def test_no_dates(self):
        filters = build_search_filters(SyncConfig(destination_root=Path("/dest")))
        assert "dateFilter" not in filters
        assert filters["mediaTypeFilter"] == {"mediaTypes": ["ALL_MEDIA"]}


class TestMediaItemCatalog:
    """Tests for paging through mediaItems:search."""

    def test_follows_cursor_until_absent(self, config):
        """Test that two pages are yielded in order and iteration stops."""
        session = Mock()
        session.post.side_effect = [
            json_response({"mediaItems": [api_item(1), api_item(2)], "nextPageToken": "tok"}),
            json_response({"mediaItems": [api_item(3)]}),
        ]

        items = list(MediaItemCatalog(session, config))

        assert [i.id for i in items] == ["id-1", "id-2", "id-3"]
        assert session.post.call_count == 2
        first_body = session.post.call_args_list[0].kwargs["json"]
        second_body = session.post.call_args_list[1].kwargs["json"]
        assert session.post.call_args_list[0].args[0] == SEARCH_URL
        assert first_body["pageSize"] == PAGE_SIZE == 100
        assert "pageToken" not in first_body
        assert second_body["pageToken"] == "tok"

    def test_is_lazy(self, config):
        """Test that the second page isn't requested until it's needed."""
        session = Mock()
        session.post.side_effect = [
            json_response({"mediaItems": [api_item(1)], "nextPageToken": "tok"}),
            json_response({"mediaItems": [api_item(2)]}),
        ]

        it = iter(MediaItemCatalog(session, config))
        assert next(it).id == "id-1"
        assert session.post.call_count == 1

    def test_page_without_items(self, config):
        """Test that an empty page still follows the cursor."""
        session = Mock()
        session.post.side_effect = [
            json_response({"nextPageToken": "tok"}),
            json_response({"mediaItems": [api_item(5)]}),
        ]
        assert [i.id for i in MediaItemCatalog(session, config)] == ["id-5"]

    def test_restartable(self, config):
        """Test that iterating again starts from the first page."""
        session = Mock()
        session.post.side_effect = lambda *a, **kw: json_response({"mediaItems": [api_item(1)]})
        catalog = MediaItemCatalog(session, config)
        assert len(list(catalog)) == 1
        assert len(list(catalog)) == 1
        assert session.post.call_count == 2

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_rejected(self, config, status):
        session = Mock()
        session.post.return_value = json_response({}, status_code=status)
        with pytest.raises(AuthError):
            list(MediaItemCatalog(session, config))

    def test_token_refresh_failure(self, config):
        """Test that a token that can't be refreshed mid-run is an AuthError."""
        session = Mock()
        session.post.side_effect = RefreshError("invalid_grant")
        with pytest.raises(AuthError, match="invalid_grant"):
            list(MediaItemCatalog(session, config))

    def test_server_error(self, config):
        session = Mock()
        session.post.return_value = json_response({}, status_code=500)
        with pytest.raises(RemoteRequestError, match="500"):
            list(MediaItemCatalog(session, config))

    def test_transport_error(self, config):
        session = Mock()
        session.post.side_effect = requests.ConnectionError("boom")
        with pytest.raises(RemoteRequestError, match="boom"):
            list(MediaItemCatalog(session, config))


class TestDownload:
    """Tests for download_url and download_media_item."""

    def test_download_url_suffix(self):
        photo = RemoteMediaItem.from_api(api_item(1))
        video = RemoteMediaItem.from_api(api_item(2, mime="video/mp4"))
        assert download_url(photo) == "https://lh3.example/1=d"
        assert download_url(video) == "https://lh3.example/2=dv"

    def test_writes_file(self, tmp_path):
        """Test streaming chunks into the destination file."""
        session = Mock()
        session.get.return_value = stream_response([b"abc", b"", b"def"])
        item = RemoteMediaItem.from_api(api_item(1))
        dest = tmp_path / "IMG_1.JPG"

        download_media_item(session, item, dest)

        assert dest.read_bytes() == b"abcdef"
        assert session.get.call_args.args[0] == "https://lh3.example/1=d"
        assert session.get.call_args.kwargs["stream"] is True
        expected = datetime.datetime(2021, 5, 1, 8, tzinfo=datetime.timezone.utc).timestamp()
        assert dest.stat().st_mtime == pytest.approx(expected)

    def test_non_2xx_leaves_no_file(self, tmp_path):
        session = Mock()
        session.get.return_value = stream_response([b"nope"], status_code=404)
        dest = tmp_path / "IMG_1.JPG"

        with pytest.raises(DownloadError) as excinfo:
            download_media_item(session, RemoteMediaItem.from_api(api_item(1)), dest)

        assert excinfo.value.status_code == 404
        assert not dest.exists()

    def test_interrupted_stream_removes_partial(self, tmp_path):
        """Test that a failure mid-stream removes what was written."""
        def chunks():
            yield b"partial"
            raise requests.exceptions.ChunkedEncodingError("cut off")

        session = Mock()
        resp = stream_response([])
        resp.iter_content.return_value = chunks()
        session.get.return_value = resp
        dest = tmp_path / "IMG_1.JPG"

        with pytest.raises(DownloadError, match="interrupted"):
            download_media_item(session, RemoteMediaItem.from_api(api_item(1)), dest)

        assert not dest.exists()

    def test_write_error_removes_partial(self, tmp_path):
        """Test that a disk write error is a LocalIOError and leaves nothing behind."""
        def chunks():
            yield b"partial"
            raise OSError("disk full")

        session = Mock()
        resp = stream_response([])
        resp.iter_content.return_value = chunks()
        session.get.return_value = resp
        dest = tmp_path / "IMG_1.JPG"

        with pytest.raises(LocalIOError, match="disk full"):
            download_media_item(session, RemoteMediaItem.from_api(api_item(1)), dest)

        assert not dest.exists()

    def test_existing_file_untouched(self, tmp_path):
        session = Mock()
        session.get.return_value = stream_response([b"new"])
        dest = tmp_path / "IMG_1.JPG"
        dest.write_bytes(b"old")

        with pytest.raises(LocalIOError, match="overwrite"):
            download_media_item(session, RemoteMediaItem.from_api(api_item(1)), dest)

        assert dest.read_bytes() == b"old"

    def test_nanosecond_creation_time_sets_mtime(self, tmp_path):
        """Test that nine fractional digits still set the file time."""
        session = Mock()
        session.get.return_value = stream_response([b"abc"])
        item = RemoteMediaItem.from_api(api_item(1, creation="2021-05-01T08:00:00.123456789Z"))
        dest = tmp_path / "IMG_1.JPG"

        download_media_item(session, item, dest)

        expected = datetime.datetime(
            2021, 5, 1, 8, 0, 0, 123456, tzinfo=datetime.timezone.utc
        ).timestamp()
        assert dest.stat().st_mtime == pytest.approx(expected)


class TestParseCreationTime:
    """Tests for parse_creation_time."""

    @pytest.mark.parametrize(
        "value, microsecond",
        [
            ("2021-05-01T08:00:00Z", 0),
            ("2021-05-01T08:00:00.5Z", 500000),
            ("2021-05-01T08:00:00.123Z", 123000),
            ("2021-05-01T08:00:00.123456789Z", 123456),
        ],
    )
    def test_fraction_lengths(self, value, microsecond):
        parsed = parse_creation_time(value)
        assert parsed == datetime.datetime(
            2021, 5, 1, 8, 0, 0, microsecond, tzinfo=datetime.timezone.utc
        )

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_creation_time("yesterday")
