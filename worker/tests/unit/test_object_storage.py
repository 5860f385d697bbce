"""
Unit tests for the object storage gateway.

The boto3 client is a MagicMock; botocore exceptions are real.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from episode_worker.errors import StorageError
from episode_worker.object_storage import ObjectStorage, create_s3_client, object_key


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage(client) -> ObjectStorage:
    return ObjectStorage(client, "local")


class TestObjectKey:
    def test_joins_parts(self):
        assert object_key("episodes", "ep-1", "720p.m3u8") == "episodes/ep-1/720p.m3u8"

    def test_skips_empty_and_slashes(self):
        assert object_key("", "/episodes/", "ep-1") == "episodes/ep-1"

    def test_all_empty(self):
        assert object_key("", "/") == ""


class TestCreateS3Client:
    def test_minio_settings(self, settings):
        """Test the client targets the MinIO endpoint with path-style addressing."""
        with patch("episode_worker.object_storage.boto3.client") as mock_client:
            create_s3_client(settings)

        args, kwargs = mock_client.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["aws_access_key_id"] == settings.minio_access_key
        assert kwargs["config"].signature_version == "s3v4"
        assert kwargs["config"].s3 == {"addressing_style": "path"}


class TestObjectStorage:
    """Tests for bucket operations."""

    def test_list_buckets(self, storage, client):
        client.list_buckets.return_value = {"Buckets": [{"Name": "local"}, {"Name": "backup"}]}
        assert storage.list_buckets() == ["local", "backup"]

    def test_list_buckets_unreachable(self, storage, client):
        client.list_buckets.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
        with pytest.raises(StorageError):
            storage.list_buckets()

    def test_download_file(self, storage, client, tmp_path):
        path = storage.download_file("uploads/ep-1", tmp_path / "source")

        assert path == tmp_path / "source"
        client.download_file.assert_called_once_with("local", "uploads/ep-1", str(tmp_path / "source"))

    def test_download_missing_object(self, storage, client, tmp_path):
        client.download_file.side_effect = client_error("404", "HeadObject")
        with pytest.raises(StorageError):
            storage.download_file("uploads/missing", tmp_path / "source")

    def test_upload_file_content_type(self, storage, client, tmp_path):
        playlist = tmp_path / "playlist.m3u8"
        playlist.write_text("#EXTM3U\n")

        storage.upload_file(playlist, "episodes/ep-1/playlist.m3u8")

        client.upload_file.assert_called_once_with(
            str(playlist),
            "local",
            "episodes/ep-1/playlist.m3u8",
            ExtraArgs={"ContentType": "application/vnd.apple.mpegurl"},
        )

    def test_upload_directory(self, storage, client, tmp_path):
        """Test every file is uploaded under the destination with its content type."""
        (tmp_path / "playlist.m3u8").write_text("#EXTM3U\n")
        (tmp_path / "720p_000.ts").write_bytes(b"\x47")
        (tmp_path / "thumbs").mkdir()
        (tmp_path / "thumbs" / "cover.jpg").write_bytes(b"\xff")

        keys = storage.upload_directory(tmp_path, "episodes/ep-1")

        assert keys == [
            "episodes/ep-1/720p_000.ts",
            "episodes/ep-1/playlist.m3u8",
            "episodes/ep-1/thumbs/cover.jpg",
        ]
        content_types = {
            call.args[2]: call.kwargs["ExtraArgs"]["ContentType"]
            for call in client.upload_file.call_args_list
        }
        assert content_types == {
            "episodes/ep-1/720p_000.ts": "video/mp2t",
            "episodes/ep-1/playlist.m3u8": "application/vnd.apple.mpegurl",
            "episodes/ep-1/thumbs/cover.jpg": "application/octet-stream",
        }

    def test_upload_failure(self, storage, client, tmp_path):
        (tmp_path / "playlist.m3u8").write_text("#EXTM3U\n")
        client.upload_file.side_effect = client_error("AccessDenied", "PutObject")

        with pytest.raises(StorageError):
            storage.upload_directory(tmp_path, "episodes/ep-1")

    def test_delete_file(self, storage, client):
        storage.delete_file("uploads/ep-1")
        client.delete_object.assert_called_once_with(Bucket="local", Key="uploads/ep-1")

    def test_delete_failure(self, storage, client):
        client.delete_object.side_effect = client_error("AccessDenied", "DeleteObject")
        with pytest.raises(StorageError):
            storage.delete_file("uploads/ep-1")
